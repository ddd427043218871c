"""
Data Ingestion Module

Import raw subscriber records from JSON, CSV and programmatic sources.
"""
import json
import csv
import random
import uuid
import logging
from datetime import datetime, timedelta
from typing import List, Dict, Any, Optional

from audience.storage import SubscriberStore

logger = logging.getLogger(__name__)


NUMERIC_FIELDS = {
    "engagement_score": float,
    "open_rate": float,
    "click_rate": float,
    "reading_time": float,
    "influence_score": float,
    "total_reading_seconds": float,
    "emails_sent": int,
    "emails_opened": int,
    "emails_clicked": int,
    "referrals": int,
    "shares": int,
}

LIST_FIELDS = [
    "investment_goals", "preferred_content_types", "sectors", "asset_classes",
    "market_cap", "geographic_focus", "active_hours",
]


class DataIngestion:
    """
    Data ingestion system for importing subscribers into one tenant.
    Supports JSON, CSV, and programmatic data sources.
    """

    def __init__(self, store: SubscriberStore, tenant_id: str):
        self.store = store
        self.tenant_id = tenant_id
        self._import_stats = {
            "subscribers_imported": 0,
            "subscribers_updated": 0,
            "errors": []
        }

    def reset_stats(self):
        """Reset import statistics"""
        self._import_stats = {
            "subscribers_imported": 0,
            "subscribers_updated": 0,
            "errors": []
        }

    def get_stats(self) -> Dict[str, Any]:
        """Get import statistics"""
        return {**self._import_stats, "errors": list(self._import_stats["errors"])}

    def import_subscribers_json(self, file_path: str) -> Dict[str, Any]:
        """
        Import subscribers from JSON file.

        Expected format:
        [
            {
                "id": "sub_1",
                "email": "jane@example.com",
                "risk_tolerance": "aggressive",
                "sectors": ["Technology"],
                "emails_sent": 40,
                "emails_opened": 31,
                ...
            }
        ]
        """
        self.reset_stats()

        try:
            with open(file_path, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self._import_stats["errors"].append(f"File error: {str(e)}")
            return self.get_stats()

        if isinstance(data, dict):
            data = [data]

        for item in data:
            self._import_subscriber(item)

        return self.get_stats()

    def import_subscribers_csv(self, file_path: str, mapping: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """
        Import subscribers from CSV file.

        List columns (sectors, active_hours, ...) are ';' or ',' separated.

        Args:
            file_path: Path to CSV file
            mapping: Optional column name mapping, e.g., {"Email": "email", "Risk": "risk_tolerance"}
        """
        self.reset_stats()
        mapping = mapping or {}

        try:
            with open(file_path, 'r', newline='', encoding='utf-8') as f:
                reader = csv.DictReader(f)

                for row in reader:
                    mapped_row = {}
                    for csv_col, value in row.items():
                        target_col = mapping.get(csv_col, csv_col.strip().lower().replace(" ", "_"))
                        if value is not None and value != "":
                            mapped_row[target_col] = value

                    self._import_subscriber(mapped_row)

        except OSError as e:
            self._import_stats["errors"].append(f"File error: {str(e)}")

        return self.get_stats()

    def import_from_dict(self, subscribers: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Import subscribers from dictionaries"""
        self.reset_stats()
        for subscriber_data in subscribers:
            self._import_subscriber(subscriber_data)
        return self.get_stats()

    def _import_subscriber(self, data: Dict[str, Any]):
        """Normalize and store a single record; failures are collected, not raised"""
        data = dict(data)
        try:
            for name, cast in NUMERIC_FIELDS.items():
                if name in data and data[name] not in (None, ""):
                    try:
                        data[name] = cast(float(data[name])) if cast is int else cast(data[name])
                    except (ValueError, TypeError):
                        del data[name]

            for name in LIST_FIELDS:
                if name in data and isinstance(data[name], str):
                    separator = ";" if ";" in data[name] else ","
                    data[name] = [s.strip() for s in data[name].split(separator) if s.strip()]
            if "active_hours" in data:
                data["active_hours"] = [int(h) for h in data["active_hours"]]

            subscriber_id = data.pop("id", None)
            email = data.get("email")
            if not subscriber_id and not email:
                raise ValueError("record has neither id nor email")

            existing_id = None
            if subscriber_id:
                if self.store.get_subscriber_record(self.tenant_id, subscriber_id) is not None:
                    existing_id = subscriber_id
            elif email:
                existing_id = self.store.find_subscriber_id_by_email(self.tenant_id, email)

            if existing_id:
                record = self.store.get_subscriber_record(self.tenant_id, existing_id) or {}
                record.update({k: v for k, v in data.items() if v is not None})
                self.store.save_subscriber_record(self.tenant_id, existing_id, record)
                self._import_stats["subscribers_updated"] += 1
            else:
                subscriber_id = subscriber_id or f"sub_{uuid.uuid4().hex[:12]}"
                self.store.save_subscriber_record(self.tenant_id, subscriber_id, data)
                self._import_stats["subscribers_imported"] += 1

        except (ValueError, TypeError) as e:
            logger.warning(f"Skipping subscriber record: {e}")
            self._import_stats["errors"].append(f"Subscriber import error: {str(e)}")

    def generate_sample_data(
        self,
        num_subscribers: int = 100,
        seed: int = 42,
        as_of: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Generate sample subscribers for demos and testing.

        The same seed and `as_of` always produce the same records.

        Args:
            num_subscribers: Number of sample subscribers to generate
            seed: Random seed
            as_of: Reference time for activity timestamps

        Returns:
            Import statistics
        """
        rng = random.Random(seed)
        as_of = as_of or datetime.utcnow()

        first_names = ["Emma", "Liam", "Olivia", "Noah", "Ava", "Ethan", "Sophia", "Mason",
                       "Isabella", "William", "Mia", "James", "Charlotte", "Alexander", "Amelia"]
        last_names = ["Smith", "Johnson", "Williams", "Brown", "Jones", "Garcia", "Miller",
                      "Davis", "Rodriguez", "Martinez", "Hernandez", "Lopez", "Gonzalez", "Wilson"]
        sectors = ["Technology", "Healthcare", "Energy", "Financials", "Real Estate", "Consumer"]
        goals = ["retirement", "income", "growth", "wealth preservation", "speculation"]
        content_types = ["market analysis", "stock picks", "education", "macro outlook", "earnings"]

        records = []
        for i in range(num_subscribers):
            first_name = rng.choice(first_names)
            last_name = rng.choice(last_names)

            sent = rng.randint(10, 60)
            opened = rng.randint(0, sent)
            clicked = rng.randint(0, max(opened // 2, 0))

            # Cluster active hours so early readers actually show up
            start_hour = rng.choice([6, 7, 9, 12, 17, 20])

            records.append({
                "id": f"sub_{i:04d}",
                "email": f"{first_name.lower()}.{last_name.lower()}{i}@example.com",
                "first_name": first_name,
                "last_name": last_name,
                "joined_at": (as_of - timedelta(days=rng.randint(30, 900))).isoformat(),
                "last_active_at": (as_of - timedelta(days=rng.randint(0, 60), hours=rng.randint(0, 23))).isoformat(),
                "risk_tolerance": rng.choice(["conservative", "moderate", "aggressive"]),
                "experience_level": rng.choice(["beginner", "intermediate", "advanced", "expert"]),
                "portfolio_size": rng.choice(["small", "medium", "large", "institutional"]),
                "time_horizon": rng.choice(["short", "medium", "long"]),
                "investment_goals": rng.sample(goals, k=rng.randint(1, 2)),
                "preferred_content_types": rng.sample(content_types, k=rng.randint(1, 3)),
                "sectors": rng.sample(sectors, k=rng.randint(1, 3)),
                "active_hours": [start_hour, start_hour + 1],
                "communication_style": rng.choice(["formal", "casual", "technical", "educational", "professional"]),
                "emails_sent": sent,
                "emails_opened": opened,
                "emails_clicked": clicked,
                "total_reading_seconds": opened * rng.randint(30, 300),
                "referrals": rng.randint(0, 3),
                "shares": rng.randint(0, 5),
            })

        return self.import_from_dict(records)

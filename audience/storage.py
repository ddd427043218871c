"""
Subscriber Storage Layer

SQLite-based persistence for raw subscriber records, generated cohorts,
personalization rules and the personalization log. Every table is scoped
by tenant id.
"""
import sqlite3
import json
import logging
from datetime import datetime
from typing import Optional, Dict, List, Any
from pathlib import Path
from contextlib import contextmanager

from models.cohort import CohortDefinition
from models.personalization import PersonalizationRule, IndividualPersonalization

logger = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class SubscriberStore:
    """
    SQLite storage backend.

    Raw records are stored as JSON; profiles are never persisted because
    they are rebuilt from the raw record on every request.
    """

    def __init__(self, db_path: str = "data/newsletter_cohorts.db"):
        self.db_path = db_path
        self._ensure_db_dir()
        self._init_db()

    def _ensure_db_dir(self):
        """Ensure database directory exists"""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _get_connection(self):
        """Get database connection context manager"""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _init_db(self):
        """Initialize database schema"""
        with self._get_connection() as conn:
            cursor = conn.cursor()

            # Raw subscriber records
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS subscribers (
                    tenant_id TEXT NOT NULL,
                    id TEXT NOT NULL,
                    email TEXT,
                    record TEXT,
                    created_at TEXT,
                    updated_at TEXT,
                    PRIMARY KEY (tenant_id, id)
                )
            """)
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_subscribers_email ON subscribers(tenant_id, email)")

            # Generated cohorts, replaced wholesale on regeneration
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS cohorts (
                    tenant_id TEXT NOT NULL,
                    id TEXT NOT NULL,
                    name TEXT,
                    family TEXT,
                    size INTEGER DEFAULT 0,
                    definition TEXT,
                    generated_at TEXT,
                    PRIMARY KEY (tenant_id, id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS personalization_rules (
                    tenant_id TEXT NOT NULL,
                    id TEXT NOT NULL,
                    cohort_id TEXT NOT NULL,
                    rule_type TEXT,
                    condition TEXT,
                    action TEXT,
                    priority INTEGER DEFAULT 1,
                    is_active INTEGER DEFAULT 1,
                    PRIMARY KEY (tenant_id, id)
                )
            """)
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_rules_cohort ON personalization_rules(tenant_id, cohort_id)")

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS personalization_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    tenant_id TEXT NOT NULL,
                    subscriber_id TEXT,
                    result TEXT,
                    fallback_used INTEGER DEFAULT 0,
                    created_at TEXT
                )
            """)
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_log_subscriber ON personalization_log(tenant_id, subscriber_id)")

    # Subscriber operations
    def save_subscriber_record(self, tenant_id: str, subscriber_id: str, record: Dict[str, Any]) -> None:
        """Save or replace a raw subscriber record"""
        now = datetime.utcnow().isoformat()
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT created_at FROM subscribers WHERE tenant_id = ? AND id = ?",
                (tenant_id, subscriber_id)
            )
            row = cursor.fetchone()
            created_at = row["created_at"] if row else now

            cursor.execute("""
                INSERT OR REPLACE INTO subscribers (tenant_id, id, email, record, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (
                tenant_id, subscriber_id, record.get("email"),
                json.dumps(record, default=_json_default), created_at, now
            ))

    def save_subscriber_records(self, tenant_id: str, records: Dict[str, Dict[str, Any]]) -> None:
        """Save or replace many raw records in one transaction"""
        now = datetime.utcnow().isoformat()
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.executemany("""
                INSERT OR REPLACE INTO subscribers (tenant_id, id, email, record, created_at, updated_at)
                VALUES (?, ?, ?, ?, COALESCE(
                    (SELECT created_at FROM subscribers WHERE tenant_id = ? AND id = ?), ?
                ), ?)
            """, [
                (
                    tenant_id, subscriber_id, record.get("email"),
                    json.dumps(record, default=_json_default),
                    tenant_id, subscriber_id, now, now
                )
                for subscriber_id, record in records.items()
            ])

    def get_subscriber_record(self, tenant_id: str, subscriber_id: str) -> Optional[Dict[str, Any]]:
        """Get a raw record, or None when the subscriber does not exist"""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT record FROM subscribers WHERE tenant_id = ? AND id = ?",
                (tenant_id, subscriber_id)
            )
            row = cursor.fetchone()
            if row:
                return json.loads(row["record"] or "{}")
            return None

    def find_subscriber_id_by_email(self, tenant_id: str, email: str) -> Optional[str]:
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT id FROM subscribers WHERE tenant_id = ? AND email = ?",
                (tenant_id, email)
            )
            row = cursor.fetchone()
            return row["id"] if row else None

    def get_all_subscriber_records(
        self,
        tenant_id: str,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> Dict[str, Dict[str, Any]]:
        """Get raw records keyed by subscriber id. Every record unless `limit` is given."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT id, record FROM subscribers WHERE tenant_id = ? ORDER BY id LIMIT ? OFFSET ?",
                (tenant_id, -1 if limit is None else limit, offset)
            )
            return {row["id"]: json.loads(row["record"] or "{}") for row in cursor.fetchall()}

    def delete_subscriber(self, tenant_id: str, subscriber_id: str) -> None:
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "DELETE FROM subscribers WHERE tenant_id = ? AND id = ?",
                (tenant_id, subscriber_id)
            )

    def count_subscribers(self, tenant_id: str) -> int:
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM subscribers WHERE tenant_id = ?", (tenant_id,))
            return cursor.fetchone()[0]

    # Cohort operations
    def replace_cohorts(self, tenant_id: str, cohorts: List[CohortDefinition]) -> None:
        """
        Replace a tenant's cohorts with a freshly generated set.

        Rules belonging to cohorts that no longer exist are dropped too.
        """
        now = datetime.utcnow().isoformat()
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM cohorts WHERE tenant_id = ?", (tenant_id,))
            for cohort in cohorts:
                cursor.execute("""
                    INSERT INTO cohorts (tenant_id, id, name, family, size, definition, generated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                """, (
                    tenant_id, cohort.id, cohort.name, cohort.family, cohort.size,
                    json.dumps(cohort.to_dict(), default=_json_default), now
                ))

            kept = [c.id for c in cohorts]
            if kept:
                placeholders = ",".join("?" * len(kept))
                cursor.execute(
                    f"DELETE FROM personalization_rules WHERE tenant_id = ? AND cohort_id NOT IN ({placeholders})",
                    [tenant_id, *kept]
                )
            else:
                cursor.execute("DELETE FROM personalization_rules WHERE tenant_id = ?", (tenant_id,))

        logger.info(f"Stored {len(cohorts)} cohorts for tenant {tenant_id}")

    def get_cohort(self, tenant_id: str, cohort_id: str) -> Optional[CohortDefinition]:
        """Get cohort by ID"""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT definition FROM cohorts WHERE tenant_id = ? AND id = ?",
                (tenant_id, cohort_id)
            )
            row = cursor.fetchone()
            if row:
                return CohortDefinition.from_dict(json.loads(row["definition"]))
            return None

    def get_all_cohorts(self, tenant_id: str) -> List[CohortDefinition]:
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT definition FROM cohorts WHERE tenant_id = ? ORDER BY family, id",
                (tenant_id,)
            )
            return [CohortDefinition.from_dict(json.loads(row["definition"])) for row in cursor.fetchall()]

    # Rule operations
    def save_rules(self, tenant_id: str, cohort_id: str, rules: List[PersonalizationRule]) -> None:
        """Replace the rule set of one cohort"""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "DELETE FROM personalization_rules WHERE tenant_id = ? AND cohort_id = ?",
                (tenant_id, cohort_id)
            )
            for rule in rules:
                cursor.execute("""
                    INSERT INTO personalization_rules (
                        tenant_id, id, cohort_id, rule_type, condition, action, priority, is_active
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    tenant_id, rule.id, rule.cohort_id, rule.rule_type.value,
                    rule.condition, rule.action, rule.priority, int(rule.is_active)
                ))

    def get_rules(self, tenant_id: str, cohort_id: str) -> List[PersonalizationRule]:
        """Get a cohort's rules, highest priority first"""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT id, cohort_id, rule_type, condition, action, priority, is_active
                FROM personalization_rules
                WHERE tenant_id = ? AND cohort_id = ?
                ORDER BY priority DESC, rowid
            """, (tenant_id, cohort_id))
            return [PersonalizationRule.from_dict(dict(row)) for row in cursor.fetchall()]

    # Personalization log
    def log_personalization(self, tenant_id: str, result: IndividualPersonalization) -> None:
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO personalization_log (tenant_id, subscriber_id, result, fallback_used, created_at)
                VALUES (?, ?, ?, ?, ?)
            """, (
                tenant_id, result.subscriber_id,
                json.dumps(result.to_dict(), default=_json_default),
                int(result.fallback_used), result.created_at.isoformat()
            ))

    def get_personalization_log(
        self,
        tenant_id: str,
        subscriber_id: Optional[str] = None,
        limit: int = 100
    ) -> List[Dict[str, Any]]:
        """Get logged personalization results, newest first"""
        with self._get_connection() as conn:
            cursor = conn.cursor()

            query = "SELECT result FROM personalization_log WHERE tenant_id = ?"
            params: List[Any] = [tenant_id]

            if subscriber_id:
                query += " AND subscriber_id = ?"
                params.append(subscriber_id)

            query += " ORDER BY id DESC LIMIT ?"
            params.append(limit)

            cursor.execute(query, params)
            return [json.loads(row["result"]) for row in cursor.fetchall()]

    # Stats
    def get_stats(self, tenant_id: str) -> Dict[str, Any]:
        """Get tenant statistics"""
        with self._get_connection() as conn:
            cursor = conn.cursor()

            stats = {}

            cursor.execute("SELECT COUNT(*) FROM subscribers WHERE tenant_id = ?", (tenant_id,))
            stats["total_subscribers"] = cursor.fetchone()[0]

            cursor.execute("SELECT COUNT(*) FROM cohorts WHERE tenant_id = ?", (tenant_id,))
            stats["total_cohorts"] = cursor.fetchone()[0]

            cursor.execute("SELECT COUNT(*) FROM personalization_rules WHERE tenant_id = ?", (tenant_id,))
            stats["total_rules"] = cursor.fetchone()[0]

            cursor.execute("SELECT COUNT(*) FROM personalization_log WHERE tenant_id = ?", (tenant_id,))
            stats["total_personalizations"] = cursor.fetchone()[0]

            return stats

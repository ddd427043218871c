"""
Cohort Models

Defines cohort criteria, the predicate objects that evaluate them, and the
cohort definitions produced by the cohort generator.
"""
from collections.abc import Hashable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Dict, List, Any, FrozenSet, Iterator
from enum import Enum


class FilterOperator(Enum):
    """Operators for custom cohort filters"""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_THAN_OR_EQUAL = "gte"
    LESS_THAN_OR_EQUAL = "lte"
    CONTAINS = "contains"
    IN = "in"
    OVERLAPS = "overlaps"  # list field shares at least one value with the filter
    IS_SET = "is_set"


@dataclass(frozen=True)
class ValueRange:
    """Half-open numeric range [minimum, maximum)"""
    minimum: Optional[float] = None
    maximum: Optional[float] = None

    def contains(self, value: Optional[float]) -> bool:
        if value is None:
            return False
        if self.minimum is not None and value < self.minimum:
            return False
        if self.maximum is not None and value >= self.maximum:
            return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        result = {}
        if self.minimum is not None:
            result["min"] = self.minimum
        if self.maximum is not None:
            result["max"] = self.maximum
        return result

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["ValueRange"]:
        if data is None:
            return None
        return cls(minimum=data.get("min"), maximum=data.get("max"))


# Predicates
#
# One class per criteria field. Each one answers a single question about a
# profile, and CohortCriteria is the conjunction of whichever are present.

class CohortPredicate:
    """Base predicate over a SubscriberProfile"""

    name = "predicate"

    def matches(self, profile, as_of: datetime) -> bool:
        raise NotImplementedError


@dataclass(frozen=True)
class MembershipPredicate(CohortPredicate):
    """Enum-valued profile field must be one of the allowed values"""
    attribute: str
    allowed: FrozenSet[str]

    @property
    def name(self) -> str:
        return f"{self.attribute}_in"

    def matches(self, profile, as_of: datetime) -> bool:
        return profile.get_attribute(self.attribute) in self.allowed


@dataclass(frozen=True)
class SectorPredicate(CohortPredicate):
    """Profile must share at least one sector with the criteria"""
    sectors: FrozenSet[str]
    name = "sectors_overlap"

    def matches(self, profile, as_of: datetime) -> bool:
        return bool(self.sectors.intersection(profile.sectors))


@dataclass(frozen=True)
class RangePredicate(CohortPredicate):
    """Numeric profile field must fall in a half-open range"""
    attribute: str
    value_range: ValueRange

    @property
    def name(self) -> str:
        return f"{self.attribute}_range"

    def matches(self, profile, as_of: datetime) -> bool:
        return self.value_range.contains(profile.get_attribute(self.attribute))


@dataclass(frozen=True)
class RecencyPredicate(CohortPredicate):
    """Profile must have been active within the last N days"""
    days: int
    name = "last_active_within"

    def matches(self, profile, as_of: datetime) -> bool:
        if profile.last_active_at is None:
            return False
        return profile.last_active_at >= as_of - timedelta(days=self.days)


@dataclass(frozen=True)
class CustomFilterPredicate(CohortPredicate):
    """
    Key/value filter on any profile field or custom attribute.

    A bare value is interpreted by shape: list against list overlaps, list
    against scalar means membership, scalar against scalar means equality.
    """
    attribute: str
    operator: FilterOperator
    value: Any = None

    @property
    def name(self) -> str:
        return f"custom_{self.attribute}"

    @classmethod
    def from_filter(cls, key: str, spec: Any) -> "CustomFilterPredicate":
        if isinstance(spec, dict) and "operator" in spec:
            return cls(key, FilterOperator(spec["operator"]), _freeze(spec.get("value")))
        if isinstance(spec, (list, tuple, set, frozenset)):
            return cls(key, FilterOperator.OVERLAPS, _freeze(spec))
        return cls(key, FilterOperator.EQUALS, spec)

    def matches(self, profile, as_of: datetime) -> bool:
        field_value = profile.get_attribute(self.attribute)
        op = self.operator

        if op == FilterOperator.EQUALS:
            return field_value == self.value

        elif op == FilterOperator.NOT_EQUALS:
            return field_value != self.value

        elif op == FilterOperator.GREATER_THAN:
            return field_value is not None and field_value > self.value

        elif op == FilterOperator.LESS_THAN:
            return field_value is not None and field_value < self.value

        elif op == FilterOperator.GREATER_THAN_OR_EQUAL:
            return field_value is not None and field_value >= self.value

        elif op == FilterOperator.LESS_THAN_OR_EQUAL:
            return field_value is not None and field_value <= self.value

        elif op == FilterOperator.CONTAINS:
            if isinstance(field_value, (str, list, tuple)):
                return self.value in field_value
            return False

        elif op in (FilterOperator.IN, FilterOperator.OVERLAPS):
            return _overlaps(field_value, self.value)

        elif op == FilterOperator.IS_SET:
            return field_value is not None and field_value != "" and field_value != []

        return False


def _overlaps(field_value: Any, allowed: Any) -> bool:
    """A scalar field must be one of `allowed`; a list field must share a value with it"""
    if not isinstance(allowed, frozenset):
        allowed = frozenset() if allowed is None else frozenset([allowed])
    if isinstance(field_value, (list, tuple, set, frozenset)):
        return any(isinstance(v, Hashable) and v in allowed for v in field_value)
    return isinstance(field_value, Hashable) and field_value in allowed


def _freeze(value: Any) -> Any:
    if isinstance(value, (list, tuple, set)):
        return frozenset(value)
    return value


@dataclass
class CohortCriteria:
    """
    Conjunction of optional predicates.

    A profile belongs to a cohort iff it satisfies every predicate that is
    set. An empty criteria object matches nothing.
    """
    risk_tolerance: Optional[List[str]] = None
    experience_level: Optional[List[str]] = None
    portfolio_size: Optional[List[str]] = None
    sectors: Optional[List[str]] = None
    engagement_score: Optional[ValueRange] = None
    open_rate: Optional[ValueRange] = None
    click_rate: Optional[ValueRange] = None
    churn_risk: Optional[ValueRange] = None
    last_active_within_days: Optional[int] = None
    custom_filters: Dict[str, Any] = field(default_factory=dict)

    def predicates(self) -> Iterator[CohortPredicate]:
        """Yield one predicate per non-null criteria field"""
        for attribute in ("risk_tolerance", "experience_level", "portfolio_size"):
            allowed = getattr(self, attribute)
            if allowed is not None:
                yield MembershipPredicate(attribute, frozenset(allowed))

        if self.sectors is not None:
            yield SectorPredicate(frozenset(self.sectors))

        for attribute in ("engagement_score", "open_rate", "click_rate", "churn_risk"):
            value_range = getattr(self, attribute)
            if value_range is not None:
                yield RangePredicate(attribute, value_range)

        if self.last_active_within_days is not None:
            yield RecencyPredicate(self.last_active_within_days)

        for key, spec in self.custom_filters.items():
            yield CustomFilterPredicate.from_filter(key, spec)

    def matches(self, profile, as_of: Optional[datetime] = None) -> bool:
        predicates = list(self.predicates())
        if not predicates:
            return False
        as_of = as_of or datetime.utcnow()
        return all(p.matches(profile, as_of) for p in predicates)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for name in ("risk_tolerance", "experience_level", "portfolio_size", "sectors"):
            value = getattr(self, name)
            if value is not None:
                result[name] = list(value)
        for name in ("engagement_score", "open_rate", "click_rate", "churn_risk"):
            value = getattr(self, name)
            if value is not None:
                result[name] = value.to_dict()
        if self.last_active_within_days is not None:
            result["last_active_within_days"] = self.last_active_within_days
        if self.custom_filters:
            result["custom_filters"] = dict(self.custom_filters)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CohortCriteria":
        data = dict(data)
        for name in ("engagement_score", "open_rate", "click_rate", "churn_risk"):
            if name in data:
                data[name] = ValueRange.from_dict(data[name])
        return cls(**data)


@dataclass
class EngagementMetrics:
    """Arithmetic means over cohort members"""
    average_open_rate: float = 0.0
    average_click_rate: float = 0.0
    average_engagement: float = 0.0
    churn_rate: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "average_open_rate": round(self.average_open_rate, 4),
            "average_click_rate": round(self.average_click_rate, 4),
            "average_engagement": round(self.average_engagement, 2),
            "churn_rate": round(self.churn_rate, 4),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngagementMetrics":
        return cls(**data)


@dataclass
class ContentPreferences:
    preferred_topics: List[str] = field(default_factory=list)
    optimal_send_time: Optional[str] = None  # "HH:MM"
    preferred_frequency: Optional[str] = None
    content_style: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "preferred_topics": list(self.preferred_topics),
            "optimal_send_time": self.optimal_send_time,
            "preferred_frequency": self.preferred_frequency,
            "content_style": self.content_style,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContentPreferences":
        return cls(**data)


@dataclass
class CohortDefinition:
    """
    A named group of subscribers produced by one rule family.

    `size` is the number of profiles matching `criteria` when the cohort
    was generated. Cohorts are regenerated as a whole, never updated.
    """
    id: str
    name: str
    description: str = ""
    size: int = 0
    criteria: CohortCriteria = field(default_factory=CohortCriteria)
    characteristics: List[str] = field(default_factory=list)
    engagement_metrics: EngagementMetrics = field(default_factory=EngagementMetrics)
    content_preferences: ContentPreferences = field(default_factory=ContentPreferences)
    family: str = ""
    member_ids: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "size": self.size,
            "criteria": self.criteria.to_dict(),
            "characteristics": list(self.characteristics),
            "engagement_metrics": self.engagement_metrics.to_dict(),
            "content_preferences": self.content_preferences.to_dict(),
            "family": self.family,
            "member_ids": list(self.member_ids),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CohortDefinition":
        data = dict(data)
        data["criteria"] = CohortCriteria.from_dict(data.get("criteria") or {})
        data["engagement_metrics"] = EngagementMetrics.from_dict(data.get("engagement_metrics") or {})
        data["content_preferences"] = ContentPreferences.from_dict(data.get("content_preferences") or {})
        if isinstance(data.get("created_at"), str):
            data["created_at"] = datetime.fromisoformat(data["created_at"])
        if isinstance(data.get("updated_at"), str):
            data["updated_at"] = datetime.fromisoformat(data["updated_at"])
        return cls(**data)

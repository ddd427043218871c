"""
Personalization Rule Engine

Derives personalization rules from a cohort's characteristics and content
preferences, and resolves which rule is authoritative for each rule type.
"""
import logging
from typing import Dict, List, Iterable, NamedTuple

from exceptions import NotFoundError
from models.cohort import CohortDefinition
from models.personalization import PersonalizationRule, RuleType

logger = logging.getLogger(__name__)


class RuleTemplate(NamedTuple):
    rule_type: RuleType
    slug: str
    condition: str
    action: str
    priority: int = 1


# Characteristic vocabulary -> rules. Characteristics not listed here
# contribute nothing.
CHARACTERISTIC_RULES: Dict[str, List[RuleTemplate]] = {
    "High engagement": [
        RuleTemplate(RuleType.SUBJECT_LINE, "engaging", "high_engagement", "use_curiosity_driven_subjects", 2),
    ],
    "Low engagement": [
        RuleTemplate(RuleType.SUBJECT_LINE, "reengage", "low_engagement", "use_re_engagement_subjects", 2),
    ],
    "Churn risk": [
        RuleTemplate(RuleType.CTA, "low_commitment", "churn_risk", "use_low_commitment_cta", 2),
    ],
    "Low risk tolerance": [
        RuleTemplate(RuleType.CONTENT_TONE, "conservative", "conservative_risk_tolerance", "use_formal_cautious_tone", 2),
    ],
    "Balanced approach": [
        RuleTemplate(RuleType.CONTENT_TONE, "balanced", "moderate_risk_tolerance", "use_balanced_measured_tone", 1),
    ],
    "High risk tolerance": [
        RuleTemplate(RuleType.CONTENT_TONE, "energetic", "aggressive_risk_tolerance", "use_energetic_opportunity_tone", 2),
    ],
    "New to investing": [
        RuleTemplate(RuleType.CONTENT_TONE, "educational", "beginner_experience", "use_educational_tone", 3),
        RuleTemplate(RuleType.CTA, "learn", "beginner_experience", "use_learning_cta", 2),
    ],
    "Highly experienced": [
        RuleTemplate(RuleType.CONTENT_TONE, "technical", "expert_experience", "use_technical_tone", 3),
    ],
    "Sector specialist": [
        RuleTemplate(RuleType.SUBJECT_LINE, "sector", "sector_interest", "lead_with_sector_name", 1),
    ],
    "Early risers": [
        RuleTemplate(RuleType.SEND_TIME, "premarket", "early_reader", "send_before_market_open", 2),
    ],
    "Volatility focused": [
        RuleTemplate(RuleType.SUBJECT_LINE, "urgent", "high_volatility", "use_urgent_opportunity_subjects", 3),
        RuleTemplate(RuleType.CTA, "act_now", "high_volatility", "use_time_sensitive_cta", 3),
    ],
}


class RuleEngine:
    """
    Rule derivation and resolution.

    derive_rules is a pure function of the cohort: the same cohort always
    yields the same rules with the same ids.
    """

    def derive_rules(self, cohort: CohortDefinition) -> List[PersonalizationRule]:
        rules: List[PersonalizationRule] = []

        for characteristic in cohort.characteristics:
            for template in CHARACTERISTIC_RULES.get(characteristic, []):
                rules.append(self._rule(cohort.id, template))

        prefs = cohort.content_preferences
        if prefs.optimal_send_time:
            rules.append(self._rule(cohort.id, RuleTemplate(
                RuleType.SEND_TIME, "timing", "cohort_optimal_time", f"send_at_{prefs.optimal_send_time}"
            )))
        if prefs.preferred_frequency:
            rules.append(self._rule(cohort.id, RuleTemplate(
                RuleType.FREQUENCY, "frequency", "cohort_preference", f"frequency_{prefs.preferred_frequency}"
            )))
        if prefs.content_style:
            rules.append(self._rule(cohort.id, RuleTemplate(
                RuleType.CONTENT_TONE, "style", "cohort_content_style", f"style_{prefs.content_style}"
            )))

        # A characteristic may repeat; keep the first rule per id
        unique: Dict[str, PersonalizationRule] = {}
        for rule in rules:
            unique.setdefault(rule.id, rule)
        return list(unique.values())

    @staticmethod
    def order(rules: Iterable[PersonalizationRule]) -> List[PersonalizationRule]:
        """Highest priority first; equal priorities keep their input order"""
        return sorted(rules, key=lambda r: r.priority, reverse=True)

    def resolve(self, rules: Iterable[PersonalizationRule]) -> Dict[RuleType, PersonalizationRule]:
        """The authoritative active rule for each rule type"""
        resolved: Dict[RuleType, PersonalizationRule] = {}
        for rule in self.order(rules):
            if rule.is_active and rule.rule_type not in resolved:
                resolved[rule.rule_type] = rule
        return resolved

    def rules_for_cohort(self, store, tenant_id: str, cohort_id: str) -> List[PersonalizationRule]:
        """
        Derive and store the rules of a stored cohort.

        Raises:
            NotFoundError: if the tenant has no such cohort
        """
        cohort = store.get_cohort(tenant_id, cohort_id)
        if cohort is None:
            raise NotFoundError("cohort", cohort_id, tenant_id)

        rules = self.derive_rules(cohort)
        store.save_rules(tenant_id, cohort_id, rules)
        logger.info(f"Derived {len(rules)} rules for cohort {cohort_id}")
        return rules

    @staticmethod
    def _rule(cohort_id: str, template: RuleTemplate) -> PersonalizationRule:
        return PersonalizationRule(
            id=f"{cohort_id}_{template.rule_type.value}_{template.slug}",
            cohort_id=cohort_id,
            rule_type=template.rule_type,
            condition=template.condition,
            action=template.action,
            priority=template.priority,
            is_active=True,
        )

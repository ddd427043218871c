"""
Tests for personalization rule derivation and resolution
"""
import pytest

from exceptions import NotFoundError
from audience.rules import RuleEngine
from models.personalization import PersonalizationRule, RuleType

from conftest import make_cohort


@pytest.fixture
def engine():
    return RuleEngine()


def rule(rule_id, rule_type, priority, is_active=True):
    return PersonalizationRule(
        id=rule_id,
        cohort_id="c1",
        rule_type=rule_type,
        condition="test",
        action=rule_id,
        priority=priority,
        is_active=is_active,
    )


class TestDeriveRules:

    def test_same_cohort_yields_identical_rules(self, engine):
        cohort = make_cohort("beginner_investors", characteristics=["New to investing", "Low engagement"])

        first = engine.derive_rules(cohort)
        second = engine.derive_rules(cohort)

        assert [r.to_dict() for r in first] == [r.to_dict() for r in second]

    def test_characteristics_map_to_rules(self, engine):
        cohort = make_cohort("beginner_investors", characteristics=["New to investing", "Unmapped trait"])

        rules = {r.id: r for r in engine.derive_rules(cohort)}

        assert "beginner_investors_content_tone_educational" in rules
        assert "beginner_investors_cta_learn" in rules
        assert rules["beginner_investors_content_tone_educational"].priority == 3

    def test_content_preferences_add_rules(self, engine):
        cohort = make_cohort("steady_readers")

        actions = {r.rule_type: r.action for r in engine.derive_rules(cohort)}

        assert actions[RuleType.SEND_TIME] == "send_at_09:00"
        assert actions[RuleType.FREQUENCY] == "frequency_weekly"
        assert actions[RuleType.CONTENT_TONE] == "style_professional"

    def test_repeated_characteristics_are_deduplicated(self, engine):
        cohort = make_cohort("x", characteristics=["Churn risk", "Churn risk"])

        ids = [r.id for r in engine.derive_rules(cohort)]

        assert len(ids) == len(set(ids))

    def test_rules_belong_to_their_cohort(self, engine):
        cohort = make_cohort("aggressive_investors", characteristics=["High risk tolerance"])

        assert all(r.cohort_id == "aggressive_investors" for r in engine.derive_rules(cohort))


class TestResolve:

    def test_highest_priority_wins(self, engine):
        rules = [
            rule("low", RuleType.CONTENT_TONE, 1),
            rule("high", RuleType.CONTENT_TONE, 3),
            rule("cta", RuleType.CTA, 2),
        ]

        resolved = engine.resolve(rules)

        assert resolved[RuleType.CONTENT_TONE].id == "high"
        assert resolved[RuleType.CTA].id == "cta"

    def test_ties_keep_input_order(self, engine):
        rules = [rule("first", RuleType.SUBJECT_LINE, 2), rule("second", RuleType.SUBJECT_LINE, 2)]

        assert engine.resolve(rules)[RuleType.SUBJECT_LINE].id == "first"

    def test_inactive_rules_are_skipped(self, engine):
        rules = [rule("off", RuleType.CTA, 5, is_active=False), rule("on", RuleType.CTA, 1)]

        assert engine.resolve(rules)[RuleType.CTA].id == "on"

    def test_order_is_descending_and_stable(self, engine):
        rules = [rule("a", RuleType.CTA, 1), rule("b", RuleType.CTA, 3), rule("c", RuleType.SEND_TIME, 1)]

        assert [r.id for r in engine.order(rules)] == ["b", "a", "c"]


class TestRulesForCohort:

    def test_unknown_cohort_raises(self, engine, store):
        with pytest.raises(NotFoundError):
            engine.rules_for_cohort(store, "acme", "missing")

    def test_rules_are_stored(self, engine, store):
        cohort = make_cohort("beginner_investors", characteristics=["New to investing"])
        store.replace_cohorts("acme", [cohort])

        rules = engine.rules_for_cohort(store, "acme", "beginner_investors")

        stored = store.get_rules("acme", "beginner_investors")
        assert {r.id for r in stored} == {r.id for r in rules}
        assert stored[0].priority == max(r.priority for r in rules)

    def test_cohorts_are_tenant_scoped(self, engine, store):
        store.replace_cohorts("acme", [make_cohort("beginner_investors")])

        with pytest.raises(NotFoundError):
            engine.rules_for_cohort(store, "globex", "beginner_investors")

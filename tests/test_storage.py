"""
Tests for tenant-scoped SQLite storage
"""
from datetime import datetime

from models.personalization import IndividualPersonalization, PersonalizationRule, RuleType

from conftest import AS_OF, make_cohort


class TestSubscriberRecords:

    def test_save_and_get(self, store):
        store.save_subscriber_record("acme", "sub_1", {"email": "a@example.com", "sectors": ["Energy"]})

        assert store.get_subscriber_record("acme", "sub_1") == {"email": "a@example.com", "sectors": ["Energy"]}
        assert store.find_subscriber_id_by_email("acme", "a@example.com") == "sub_1"
        assert store.count_subscribers("acme") == 1

    def test_records_are_tenant_scoped(self, store):
        store.save_subscriber_record("acme", "sub_1", {"email": "a@example.com"})

        assert store.get_subscriber_record("globex", "sub_1") is None
        assert store.find_subscriber_id_by_email("globex", "a@example.com") is None
        assert store.get_all_subscriber_records("globex") == {}

    def test_datetimes_are_serialized(self, store):
        store.save_subscriber_record("acme", "sub_1", {"last_active_at": AS_OF})

        assert store.get_subscriber_record("acme", "sub_1")["last_active_at"] == AS_OF.isoformat()

    def test_bulk_save_and_unbounded_read(self, store):
        store.save_subscriber_records("acme", {f"sub_{i}": {"email": f"{i}@example.com"} for i in range(12)})
        store.save_subscriber_records("acme", {"sub_0": {"email": "new@example.com"}})

        records = store.get_all_subscriber_records("acme")
        assert len(records) == 12
        assert records["sub_0"] == {"email": "new@example.com"}
        assert store.find_subscriber_id_by_email("acme", "new@example.com") == "sub_0"

    def test_pagination_and_delete(self, store):
        for i in range(5):
            store.save_subscriber_record("acme", f"sub_{i}", {"email": f"{i}@example.com"})

        page = store.get_all_subscriber_records("acme", limit=2, offset=2)
        assert list(page) == ["sub_2", "sub_3"]

        store.delete_subscriber("acme", "sub_0")
        assert store.count_subscribers("acme") == 4


class TestCohortsAndRules:

    def test_replace_cohorts_drops_previous_set(self, store):
        store.replace_cohorts("acme", [make_cohort("a"), make_cohort("b")])
        store.replace_cohorts("acme", [make_cohort("b")])

        assert [c.id for c in store.get_all_cohorts("acme")] == ["b"]
        assert store.get_cohort("acme", "a") is None

    def test_stored_cohort_keeps_its_criteria(self, store):
        cohort = make_cohort("aggressive_investors")
        store.replace_cohorts("acme", [cohort])

        loaded = store.get_cohort("acme", "aggressive_investors")

        assert loaded.to_dict() == cohort.to_dict()

    def test_orphan_rules_are_removed_with_their_cohort(self, store):
        store.replace_cohorts("acme", [make_cohort("a")])
        store.save_rules("acme", "a", [
            PersonalizationRule("a_cta_x", "a", RuleType.CTA, "cond", "act", priority=2),
        ])

        store.replace_cohorts("acme", [make_cohort("b")])

        assert store.get_rules("acme", "a") == []

    def test_rules_come_back_by_priority(self, store):
        store.save_rules("acme", "a", [
            PersonalizationRule("r1", "a", RuleType.CTA, "cond", "act", priority=1),
            PersonalizationRule("r2", "a", RuleType.CTA, "cond", "act", priority=3, is_active=False),
        ])

        rules = store.get_rules("acme", "a")

        assert [r.id for r in rules] == ["r2", "r1"]
        assert rules[0].is_active is False


class TestPersonalizationLog:

    def test_log_and_read_back(self, store):
        result = IndividualPersonalization(
            subscriber_id="sub_1",
            personalized_subject="Hi",
            personalized_content="Body",
            personalized_cta="Go",
            send_time=datetime(2024, 6, 4, 9, 0),
            fallback_used=True,
        )

        store.log_personalization("acme", result)

        log = store.get_personalization_log("acme", subscriber_id="sub_1")
        assert len(log) == 1
        assert log[0]["personalized_subject"] == "Hi"
        assert log[0]["fallback_used"] is True
        assert store.get_personalization_log("globex") == []

    def test_stats(self, store):
        store.save_subscriber_record("acme", "sub_1", {})
        store.replace_cohorts("acme", [make_cohort("a")])

        stats = store.get_stats("acme")

        assert stats["total_subscribers"] == 1
        assert stats["total_cohorts"] == 1
        assert stats["total_rules"] == 0
        assert stats["total_personalizations"] == 0

"""
tests/test_user_store.py -- Unit tests for auth/store.py (UserStore).

Each test gets a fresh SQLite file under tmp_path via the user_store fixture.
"""

from __future__ import annotations

from billing.models import SubscriptionRecord, Tier


class TestUpsert:
    def test_insert_new_subject(self, user_store):
        user = user_store.upsert_user_by_subject("sub-1", "ada@example.com", "Ada", "https://example.com/a.png")
        assert user.id
        assert user.provider_subject == "sub-1"
        assert user.email == "ada@example.com"
        assert user.name == "Ada"
        assert user.picture == "https://example.com/a.png"
        assert user.created_at == user.updated_at

    def test_repeat_upsert_keeps_one_row(self, user_store):
        first = user_store.upsert_user_by_subject("sub-1", "ada@example.com", "Ada", None)
        second = user_store.upsert_user_by_subject("sub-1", "ada@new.example.com", "Ada L.", None)

        assert user_store.count_users() == 1
        assert second.id == first.id
        assert second.created_at == first.created_at
        assert second.email == "ada@new.example.com"
        assert second.name == "Ada L."

    def test_distinct_subjects_get_distinct_ids(self, user_store):
        a = user_store.upsert_user_by_subject("sub-a", "a@example.com", "A", None)
        b = user_store.upsert_user_by_subject("sub-b", "b@example.com", "B", None)
        assert a.id != b.id
        assert user_store.count_users() == 2

    def test_lookups(self, user_store):
        user = user_store.upsert_user_by_subject("sub-1", "ada@example.com", "Ada", None)
        assert user_store.get_by_id(user.id) == user
        assert user_store.get_by_subject("sub-1") == user
        assert user_store.get_by_id("missing") is None
        assert user_store.get_by_subject("missing") is None


class TestSubscriptions:
    def test_no_record(self, user_store):
        assert user_store.read_subscription("nobody") is None

    def test_save_and_read(self, user_store):
        record = SubscriptionRecord(
            user_id="u1",
            tier=Tier.BUSINESS,
            subscribed=True,
            period_end="2026-12-01T00:00:00+00:00",
            billing_customer_id="cus_123",
        )
        user_store.save_subscription(record)
        assert user_store.read_subscription("u1") == record

    def test_save_replaces(self, user_store):
        user_store.save_subscription(SubscriptionRecord(user_id="u1", tier=Tier.PRO, subscribed=True))
        user_store.save_subscription(SubscriptionRecord(user_id="u1", tier=Tier.FREE, subscribed=False))
        assert user_store.read_subscription("u1").tier is Tier.FREE

    def test_unknown_tier_reads_as_free(self, user_store):
        user_store.save_subscription(SubscriptionRecord(user_id="u1", tier=Tier.PRO, subscribed=True))
        with user_store.engine.begin() as conn:
            conn.exec_driver_sql("UPDATE subscribers SET subscription_tier = 'platinum' WHERE user_id = 'u1'")
        assert user_store.read_subscription("u1").tier is Tier.FREE

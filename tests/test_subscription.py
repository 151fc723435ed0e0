"""
ペイウォール（サブスクリプション）の判定と操作を検証するテスト。
Tests for the subscription gate and manage-subscription actions.
"""
import unittest
from unittest import mock

from tests.base import DatabaseTestCase, make_user

from rwanda_planner import constants, subscription
from rwanda_planner.database import SessionLocal
from rwanda_planner.errors import ApiError
from rwanda_planner.models import Profile, StaffAuditLog, Subscription, UserRole


class HasActiveSubscriptionTests(unittest.TestCase):
    def test_admin_always_has_access(self):
        self.assertTrue(subscription.has_active_subscription(True, None))
        self.assertTrue(subscription.has_active_subscription(True, {"status": "inactive"}))

    def test_active_row_grants_access(self):
        self.assertTrue(subscription.has_active_subscription(False, {"status": "active"}))

    def test_inactive_or_missing_row_denies_access(self):
        self.assertFalse(subscription.has_active_subscription(False, {"status": "inactive"}))
        self.assertFalse(subscription.has_active_subscription(False, None))

    def test_prices(self):
        self.assertEqual(subscription.price_for("rwandan"), 0)
        self.assertEqual(subscription.price_for("east_african"), 10)
        self.assertEqual(subscription.price_for("martian"), 50)
        self.assertEqual(subscription.price_for(None), 50)


class ActivateTests(DatabaseTestCase):
    def setUp(self):
        super().setUp()
        self.user = make_user("user-1")

    def _row(self, user_id="user-1"):
        db = SessionLocal()
        try:
            return db.query(Subscription).filter(Subscription.user_id == user_id).first()
        finally:
            db.close()

    def test_free_tier_activates_without_reference(self):
        result = subscription.activate(self.user, None, "rwandan")

        self.assertEqual(result, {"success": True, "message": "Subscription activated successfully"})
        row = self._row()
        self.assertEqual(row.status, "active")
        self.assertEqual(row.payment_method, "free")
        self.assertEqual(row.amount, 0)
        self.assertTrue(subscription.check(self.user)["hasSubscription"])

    def test_paid_tier_requires_reference(self):
        with self.assertRaises(ApiError) as ctx:
            subscription.activate(self.user, "  ", "foreigner")
        self.assertEqual(ctx.exception.status, 400)
        self.assertEqual(ctx.exception.message, "Payment reference required")
        self.assertIsNone(self._row())

    def test_any_reference_activates_paid_tier(self):
        subscription.activate(self.user, "PAYPAL-123", "foreigner")
        row = self._row()
        self.assertEqual(row.status, "active")
        self.assertEqual(row.payment_reference, "PAYPAL-123")
        self.assertEqual(row.amount, 50)

    def test_activation_upserts_single_row(self):
        subscription.activate(self.user, "REF-1", "foreigner")
        subscription.activate(self.user, "REF-2", "foreigner")
        db = SessionLocal()
        try:
            self.assertEqual(db.query(Subscription).filter(Subscription.user_id == "user-1").count(), 1)
        finally:
            db.close()
        self.assertEqual(self._row().payment_reference, "REF-2")

    def test_profile_nationality_wins_over_request(self):
        self.add(Profile(user_id="user-1", nationality="east_african"))
        with self.assertRaises(ApiError):
            subscription.activate(self.user, None, "rwandan")


class GateTests(DatabaseTestCase):
    def test_unsubscribed_user_gets_402_with_payment_details(self):
        with self.assertRaises(ApiError) as ctx:
            subscription.require_subscription(make_user("user-9"))
        self.assertEqual(ctx.exception.status, 402)
        self.assertEqual(ctx.exception.extra["price"], 50)
        self.assertEqual(ctx.exception.extra["paymentUrl"], constants.PAYPAL_PAYMENT_URL)

    def test_admin_email_passes_gate(self):
        with mock.patch.object(constants, "ADMIN_EMAILS", ["boss@example.com"]):
            user = make_user("admin-1", email="Boss@Example.com")
            status = subscription.check(user)
            self.assertTrue(status["isAdmin"])
            subscription.require_subscription(user)

    def test_active_subscriber_passes_gate(self):
        self.add(Subscription(user_id="user-2", status="active", amount=50))
        subscription.require_subscription(make_user("user-2"))


class StaffActionTests(DatabaseTestCase):
    def setUp(self):
        super().setUp()
        self.add(UserRole(user_id="staff-1", role="staff"))
        self.staff = make_user("staff-1", email="staff@example.com")

    def test_non_staff_cannot_create(self):
        with self.assertRaises(ApiError) as ctx:
            subscription.manage(make_user("user-1"), {"action": "staff_create", "target_user_id": "user-2"})
        self.assertEqual(ctx.exception.status, 403)

    def test_staff_create_update_delete_are_audited(self):
        created = subscription.manage(self.staff, {"action": "staff_create", "target_user_id": "user-2"})
        sub = created["subscription"]
        self.assertEqual(sub["payment_reference"], subscription.STAFF_CREATED_REFERENCE)
        self.assertEqual(sub["status"], "active")

        updated = subscription.manage(
            self.staff, {"action": "staff_update", "subscription_id": sub["id"], "new_status": "inactive"}
        )
        self.assertEqual(updated["subscription"]["status"], "inactive")

        subscription.manage(self.staff, {"action": "staff_delete", "subscription_id": sub["id"]})

        db = SessionLocal()
        try:
            actions = [row.action for row in db.query(StaffAuditLog).all()]
        finally:
            db.close()
        self.assertEqual(sorted(actions), ["create", "delete", "update"])

    def test_unknown_action(self):
        with self.assertRaises(ApiError) as ctx:
            subscription.manage(self.staff, {"action": "refund"})
        self.assertEqual(ctx.exception.message, "Invalid action")


if __name__ == "__main__":
    unittest.main()

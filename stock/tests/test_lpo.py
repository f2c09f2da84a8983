from decimal import Decimal
from unittest import mock

from django.test import TestCase

from main.models import AuditLog
from stock.models import LocalPurchaseOrder
from stock.services import LocalPurchaseOrderService, BusinessRuleError, ValidationError, NotFoundError
from stock.services.procurement import DraftLpo, DraftLpoLine
from stock.tests.helpers import ApiClientMixin, make_item, make_user, make_vendor, login


Status = LocalPurchaseOrder.Status


class LocalPurchaseOrderTests(TestCase):

    def setUp(self):
        self.user = make_user()
        self.item = make_item("PAR500", "Paracetamol")
        self.vendor = make_vendor("VEND-001", "Alpha Pharma", [self.item])
        self.lpo = self.create_lpo()

    def create_lpo(self):
        draft = DraftLpo(vendor_id=self.vendor.id, vendor_name=self.vendor.name, items=[
            DraftLpoLine(item_id=self.item.id, item_name="Paracetamol Tablet", quantity=10,
                         unit_price=Decimal("0.08")),
        ])
        return LocalPurchaseOrderService.create_from_draft(draft, user=self.user)

    def test_draft_is_persisted_with_lines(self):
        self.assertEqual(self.lpo.status, Status.DRAFT)
        self.assertEqual(self.lpo.grand_total, Decimal("0.80"))
        self.assertEqual(self.lpo.items.count(), 1)

    def test_numbers_are_sequential(self):
        second = self.create_lpo()
        self.assertEqual(int(second.lpo_number[-4:]), int(self.lpo.lpo_number[-4:]) + 1)

    def test_taken_number_is_retried(self):
        taken = self.lpo.lpo_number
        with mock.patch("stock.services.base_service.generate_number", side_effect=[taken, "LPO-20990101-0001"]):
            second = self.create_lpo()

        self.assertEqual(second.lpo_number, "LPO-20990101-0001")
        self.assertEqual(second.items.count(), 1)

    def test_number_conflict_becomes_business_rule_error(self):
        with mock.patch("stock.services.base_service.generate_number", return_value=self.lpo.lpo_number):
            with self.assertRaises(BusinessRuleError):
                self.create_lpo()

        self.assertEqual(LocalPurchaseOrder.objects.count(), 1)

    def test_send_then_complete(self):
        result = LocalPurchaseOrderService.transition(self.lpo.id, "send", user=self.user)
        self.assertEqual(result["purchase_order"]["status"], Status.SENT)
        self.assertEqual(result["purchase_order"]["allowed_actions"], ["complete"])

        LocalPurchaseOrderService.transition(self.lpo.id, "complete", user=self.user)
        self.lpo.refresh_from_db()
        self.assertEqual(self.lpo.status, Status.COMPLETED)
        self.assertIsNotNone(self.lpo.sent_at)
        self.assertIsNotNone(self.lpo.completed_at)
        self.assertTrue(AuditLog.objects.filter(action="lpo.completed").exists())

    def test_reject_draft(self):
        LocalPurchaseOrderService.transition(self.lpo.id, "reject", user=self.user, notes="Prices too high")
        self.lpo.refresh_from_db()
        self.assertEqual(self.lpo.status, Status.REJECTED)
        self.assertEqual(self.lpo.notes, "Prices too high")
        self.assertIsNotNone(self.lpo.rejected_at)

    def test_completed_cannot_be_rejected(self):
        LocalPurchaseOrderService.transition(self.lpo.id, "send")
        LocalPurchaseOrderService.transition(self.lpo.id, "complete")

        with self.assertRaises(BusinessRuleError):
            LocalPurchaseOrderService.transition(self.lpo.id, "reject")
        self.lpo.refresh_from_db()
        self.assertEqual(self.lpo.status, Status.COMPLETED)

    def test_sent_cannot_be_rejected(self):
        LocalPurchaseOrderService.transition(self.lpo.id, "send")
        with self.assertRaises(BusinessRuleError):
            LocalPurchaseOrderService.transition(self.lpo.id, "reject")

    def test_draft_cannot_skip_to_completed(self):
        with self.assertRaises(BusinessRuleError):
            LocalPurchaseOrderService.transition(self.lpo.id, "complete")

    def test_rejected_is_terminal(self):
        LocalPurchaseOrderService.transition(self.lpo.id, "reject")
        for action in ("send", "complete", "reject"):
            with self.assertRaises(BusinessRuleError):
                LocalPurchaseOrderService.transition(self.lpo.id, action)

    def test_allowed_actions(self):
        self.assertEqual(LocalPurchaseOrderService.allowed_actions(self.lpo), ["send", "reject"])
        self.lpo.status = Status.COMPLETED
        self.assertEqual(LocalPurchaseOrderService.allowed_actions(self.lpo), [])

    def test_unknown_action(self):
        with self.assertRaises(ValidationError):
            LocalPurchaseOrderService.transition(self.lpo.id, "archive")

    def test_unknown_lpo(self):
        with self.assertRaises(NotFoundError):
            LocalPurchaseOrderService.transition(9999, "send")

    def test_only_drafts_can_be_deleted(self):
        LocalPurchaseOrderService.transition(self.lpo.id, "send")
        with self.assertRaises(BusinessRuleError):
            LocalPurchaseOrderService.delete(self.lpo.id)

        other = self.create_lpo()
        LocalPurchaseOrderService.delete(other.id)
        self.assertFalse(LocalPurchaseOrder.objects.filter(id=other.id).exists())

    def test_stats(self):
        LocalPurchaseOrderService.transition(self.lpo.id, "send")
        self.create_lpo()

        stats = LocalPurchaseOrderService.get_stats()["by_status"]
        self.assertEqual(stats[Status.SENT]["count"], 1)
        self.assertEqual(stats[Status.DRAFT]["count"], 1)
        self.assertEqual(stats[Status.COMPLETED]["count"], 0)


class LocalPurchaseOrderApiTests(ApiClientMixin, TestCase):

    def setUp(self):
        self.token = login(make_user())
        item = make_item("PAR500", "Paracetamol")
        vendor = make_vendor("VEND-001", "Alpha Pharma", [item])
        draft = DraftLpo(vendor_id=vendor.id, vendor_name=vendor.name, items=[
            DraftLpoLine(item_id=item.id, item_name="Paracetamol Tablet", quantity=1, unit_price=Decimal("0.08")),
        ])
        self.lpo = LocalPurchaseOrderService.create_from_draft(draft)

    def test_action_endpoint(self):
        response = self.post_json(f"/api/stock/lpos/{self.lpo.id}/reject/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["purchase_order"]["status"], "REJECTED")

        response = self.post_json(f"/api/stock/lpos/{self.lpo.id}/send/")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["details"]["rule"], "lpo_status_transition")

    def test_list_filters_by_status(self):
        response = self.get_json("/api/stock/lpos/", status="draft")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["pagination"]["total_items"], 1)

        response = self.get_json("/api/stock/lpos/", status="sent")
        self.assertEqual(response.json()["pagination"]["total_items"], 0)

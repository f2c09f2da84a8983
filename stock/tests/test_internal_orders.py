from datetime import date

from django.test import TestCase

from stock.models import InternalOrder, Stock, StockLocation, StockMovement
from stock.services import (
    InternalOrderService, BusinessRuleError, InsufficientStockError, ValidationError, NotFoundError
)
from stock.tests.helpers import ApiClientMixin, make_item, make_stock, make_user, login


Status = InternalOrder.Status


class InternalOrderTests(TestCase):

    def setUp(self):
        self.user = make_user()
        self.item = make_item("PAR500", "Paracetamol", strength_value=500, strength_unit="mg")
        self.late = make_stock(self.item, 100, StockLocation.BULK_STORE, "LATE", date(2028, 1, 31))
        self.early = make_stock(self.item, 30, StockLocation.BULK_STORE, "EARLY", date(2027, 1, 31))

    def request(self, quantity=50):
        result = InternalOrderService.create([{"item_id": self.item.id, "quantity": quantity}], user=self.user)
        return result["id"]

    def test_create_pending_order(self):
        result = InternalOrderService.create([
            {"item_id": self.item.id, "quantity": 20},
            {"item_id": self.item.id, "quantity": 5},
        ], notes="Weekend cover", user=self.user)

        order = result["order"]
        self.assertEqual(order["status"], Status.PENDING)
        self.assertTrue(order["order_number"].startswith("IO-"))
        self.assertEqual(order["items"], [{
            "id": order["items"][0]["id"],
            "item_id": self.item.id,
            "item_name": "Paracetamol 500mg Tablet",
            "quantity": 25,
        }])

    def test_create_validates_lines(self):
        with self.assertRaises(ValidationError):
            InternalOrderService.create([])
        with self.assertRaises(ValidationError):
            InternalOrderService.create([{"item_id": self.item.id, "quantity": 0}])
        with self.assertRaises(NotFoundError):
            InternalOrderService.create([{"item_id": 9999, "quantity": 1}])

    def test_issue_moves_stock_first_expiry_first(self):
        order_id = self.request(50)
        InternalOrderService.approve(order_id, user=self.user)

        InternalOrderService.issue(order_id, user=self.user)

        self.early.refresh_from_db()
        self.late.refresh_from_db()
        self.assertEqual(self.early.current_stock_quantity, 0)
        self.assertEqual(self.late.current_stock_quantity, 80)

        dispensary = {
            stock.batch_id: stock
            for stock in Stock.objects.filter(item=self.item, location=StockLocation.DISPENSARY)
        }
        self.assertEqual(dispensary["EARLY"].current_stock_quantity, 30)
        self.assertEqual(dispensary["EARLY"].expiry_date, date(2027, 1, 31))
        self.assertEqual(dispensary["LATE"].current_stock_quantity, 20)

        types = StockMovement.MovementType
        self.assertEqual(StockMovement.objects.filter(movement_type=types.TRANSFER_OUT).count(), 2)
        self.assertEqual(StockMovement.objects.filter(movement_type=types.TRANSFER_IN).count(), 2)

        order = InternalOrder.objects.get(id=order_id)
        self.assertEqual(order.status, Status.ISSUED)
        self.assertIsNotNone(order.issued_at)

    def test_issue_adds_to_existing_dispensary_batch(self):
        existing = make_stock(self.item, 7, StockLocation.DISPENSARY, "EARLY", date(2027, 1, 31))

        InternalOrderService.issue(self.request(10), user=self.user)

        existing.refresh_from_db()
        self.assertEqual(existing.current_stock_quantity, 17)

    def test_issue_without_enough_stock_changes_nothing(self):
        order_id = self.request(500)

        with self.assertRaises(InsufficientStockError):
            InternalOrderService.issue(order_id, user=self.user)

        self.early.refresh_from_db()
        self.assertEqual(self.early.current_stock_quantity, 30)
        self.assertFalse(Stock.objects.filter(location=StockLocation.DISPENSARY).exists())
        self.assertEqual(InternalOrder.objects.get(id=order_id).status, Status.PENDING)

    def test_reject_requires_reason(self):
        order_id = self.request()
        with self.assertRaises(ValidationError):
            InternalOrderService.reject(order_id, reason="  ")

        InternalOrderService.reject(order_id, reason="Bulk store count pending", user=self.user)
        order = InternalOrder.objects.get(id=order_id)
        self.assertEqual(order.status, Status.REJECTED)
        self.assertEqual(order.rejection_reason, "Bulk store count pending")

    def test_terminal_states(self):
        issued = self.request(1)
        InternalOrderService.issue(issued)
        with self.assertRaises(BusinessRuleError):
            InternalOrderService.reject(issued, reason="Too late")
        with self.assertRaises(BusinessRuleError):
            InternalOrderService.issue(issued)

        rejected = self.request(1)
        InternalOrderService.reject(rejected, reason="Duplicate")
        with self.assertRaises(BusinessRuleError):
            InternalOrderService.approve(rejected)

    def test_approve_twice_is_rejected(self):
        order_id = self.request()
        InternalOrderService.approve(order_id)
        with self.assertRaises(BusinessRuleError):
            InternalOrderService.approve(order_id)


class InternalOrderApiTests(ApiClientMixin, TestCase):

    def setUp(self):
        self.token = login(make_user())
        self.item = make_item("PAR500", "Paracetamol")
        make_stock(self.item, 10)

    def test_request_and_issue(self):
        response = self.post_json("/api/stock/internal-orders/", {
            "items": [{"item_id": self.item.id, "quantity": 4}],
        })
        self.assertEqual(response.status_code, 201)
        order_id = response.json()["id"]

        response = self.post_json(f"/api/stock/internal-orders/{order_id}/issue/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["order"]["status"], "ISSUED")

    def test_insufficient_stock_response(self):
        response = self.post_json("/api/stock/internal-orders/", {
            "items": [{"item_id": self.item.id, "quantity": 40}],
        })
        order_id = response.json()["id"]

        response = self.post_json(f"/api/stock/internal-orders/{order_id}/issue/")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["code"], "insufficient_stock")

    def test_reject_without_reason(self):
        order_id = self.post_json("/api/stock/internal-orders/", {
            "items": [{"item_id": self.item.id, "quantity": 1}],
        }).json()["id"]

        response = self.post_json(f"/api/stock/internal-orders/{order_id}/reject/")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["code"], "validation_error")

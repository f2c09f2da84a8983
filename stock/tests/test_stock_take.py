from datetime import date
from decimal import Decimal

from django.test import TestCase

from stock.models import Stock, StockLocation, StockMovement, StockTakeSession
from stock.services import StockTakeService, BusinessRuleError, ValidationError
from stock.tests.helpers import make_item, make_stock, make_user


class StockTakeTests(TestCase):

    def setUp(self):
        self.user = make_user()
        self.item = make_item("PAR500", "Paracetamol", unit_cost=Decimal("0.50"))
        self.batch_a = make_stock(self.item, 100, StockLocation.DISPENSARY, "A1", date(2027, 1, 31))
        self.batch_b = make_stock(self.item, 40, StockLocation.DISPENSARY, "B2", date(2027, 6, 30))
        make_stock(self.item, 999, StockLocation.BULK_STORE, "A1")

    def start(self):
        return StockTakeService.start(StockLocation.DISPENSARY, user=self.user)

    def lines(self, result):
        return {line["batch_id"]: line for line in result["session"]["items"]}

    def test_start_snapshots_location_stock(self):
        result = self.start()
        lines = self.lines(result)

        self.assertEqual(set(lines), {"A1", "B2"})
        self.assertEqual(lines["A1"]["system_quantity"], 100)
        self.assertEqual(lines["A1"]["physical_quantity"], 100)
        self.assertEqual(lines["A1"]["variance"], 0)
        self.assertTrue(result["session"]["session_number"].startswith("ST-"))

    def test_one_ongoing_session_per_location(self):
        self.start()
        with self.assertRaises(BusinessRuleError):
            self.start()
        StockTakeService.start(StockLocation.BULK_STORE, user=self.user)

    def test_record_counts_computes_variance(self):
        result = self.start()
        line = self.lines(result)["A1"]

        result = StockTakeService.record_counts(result["id"], [{"id": line["id"], "physical_quantity": 90}])

        updated = self.lines(result)["A1"]
        self.assertEqual(updated["variance"], -10)
        self.assertEqual(result["session"]["summary"]["lines_with_variance"], 1)
        self.assertEqual(result["session"]["summary"]["net_variance"], -10)
        self.assertEqual(Decimal(result["session"]["summary"]["variance_value"]), Decimal("-5.00"))

    def test_negative_counts_are_rejected(self):
        result = self.start()
        line = self.lines(result)["A1"]
        with self.assertRaises(ValidationError):
            StockTakeService.record_counts(result["id"], [{"id": line["id"], "physical_quantity": -1}])

    def test_finalize_applies_only_variances(self):
        result = self.start()
        line = self.lines(result)["A1"]
        StockTakeService.record_counts(result["id"], [{"id": line["id"], "physical_quantity": 95}])

        StockTakeService.finalize(result["id"], user=self.user)

        self.batch_a.refresh_from_db()
        self.batch_b.refresh_from_db()
        self.assertEqual(self.batch_a.current_stock_quantity, 95)
        self.assertEqual(self.batch_b.current_stock_quantity, 40)

        movements = StockMovement.objects.filter(movement_type=StockMovement.MovementType.COUNT_ADJUSTMENT)
        self.assertEqual(movements.count(), 1)
        movement = movements.get()
        self.assertEqual(movement.quantity, -5)
        self.assertEqual(movement.quantity_before, 100)
        self.assertEqual(movement.quantity_after, 95)

        session = StockTakeSession.objects.get(id=result["id"])
        self.assertEqual(session.status, StockTakeSession.Status.COMPLETED)
        self.assertEqual(session.completed_by, self.user)

    def test_finalize_recreates_deleted_stock_row(self):
        result = self.start()
        line = self.lines(result)["B2"]
        StockTakeService.record_counts(result["id"], [{"id": line["id"], "physical_quantity": 12}])
        self.batch_b.delete()

        StockTakeService.finalize(result["id"], user=self.user)

        recreated = Stock.objects.get(item=self.item, batch_id="B2", location=StockLocation.DISPENSARY)
        self.assertEqual(recreated.current_stock_quantity, 12)
        self.assertEqual(recreated.expiry_date, date(2027, 6, 30))

    def test_completed_session_is_frozen(self):
        result = self.start()
        StockTakeService.finalize(result["id"], user=self.user)

        line = self.lines(result)["A1"]
        with self.assertRaises(BusinessRuleError):
            StockTakeService.record_counts(result["id"], [{"id": line["id"], "physical_quantity": 1}])
        with self.assertRaises(BusinessRuleError):
            StockTakeService.finalize(result["id"], user=self.user)

    def test_history(self):
        result = self.start()
        StockTakeService.finalize(result["id"], user=self.user)

        history = StockTakeService.list(location="dispensary")
        self.assertEqual(history["pagination"]["total_items"], 1)
        self.assertEqual(history["sessions"][0]["status"], StockTakeSession.Status.COMPLETED)

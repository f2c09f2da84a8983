from decimal import Decimal

from django.test import TestCase

from main.models import User
from stock.models import LocalPurchaseOrder, ProcurementSession, StockLocation
from stock.services import ProcurementSessionService, BusinessRuleError, ValidationError, NotFoundError
from stock.tests.helpers import ApiClientMixin, make_item, make_stock, make_user, make_vendor, login


class ProcurementSessionServiceTests(TestCase):

    def setUp(self):
        self.user = make_user()
        self.paracetamol = make_item("PAR500", "Paracetamol", strength_value=500, strength_unit="mg",
                                     bulk_store_reorder_level=500)
        self.ibuprofen = make_item("IBU200", "Ibuprofen", strength_value=200, strength_unit="mg",
                                   bulk_store_reorder_level=800)
        self.gauze = make_item("GAUZE-S", "Gauze Swabs", formulation="MEDICAL_SUPPLY", category="MEDICAL_SUPPLY",
                               bulk_store_reorder_level=10)
        make_stock(self.paracetamol, 200)
        make_stock(self.ibuprofen, 5000)
        make_stock(self.gauze, 50)

        self.vendor_a = make_vendor("VEND-001", "Alpha Pharma", [self.paracetamol, self.ibuprofen])
        self.vendor_b = make_vendor("VEND-002", "Beta Medical", [self.paracetamol, self.gauze])

    def start(self, **kwargs):
        return ProcurementSessionService.create(location=StockLocation.BULK_STORE, user=self.user, **kwargs)

    def test_new_session_starts_with_low_stock_items(self):
        result = self.start()

        session = ProcurementSession.objects.get(id=result["id"])
        self.assertEqual(session.procurement_list, [self.paracetamol.id])
        self.assertEqual(session.status, ProcurementSession.Status.DRAFT)
        line = result["session"]["items"][0]
        self.assertEqual(line["item_name"], "Paracetamol 500mg Tablet")
        self.assertEqual(line["on_hand"], 200)
        self.assertEqual(line["reorder_level"], 500)

    def test_relevant_vendors_follow_list(self):
        result = self.start()
        vendors = result["session"]["relevant_vendors"]
        self.assertEqual([v["id"] for v in vendors], [self.vendor_a.id, self.vendor_b.id])

        result = ProcurementSessionService.remove_item(result["id"], self.paracetamol.id)
        self.assertEqual(result["session"]["relevant_vendors"], [])

    def test_manual_add_and_remove(self):
        session_id = self.start()["id"]

        ProcurementSessionService.add_item(session_id, self.gauze.id)
        ProcurementSessionService.add_item(session_id, self.gauze.id)
        session = ProcurementSession.objects.get(id=session_id)
        self.assertEqual(session.procurement_list, [self.paracetamol.id, self.gauze.id])

        ProcurementSessionService.remove_item(session_id, self.gauze.id)
        session.refresh_from_db()
        self.assertEqual(session.procurement_list, [self.paracetamol.id])

    def test_candidates_exclude_listed_items(self):
        session_id = self.start(include_low_stock=False)["id"]
        candidates = ProcurementSessionService.get_candidates(session_id)["items"]
        self.assertEqual([c["item_id"] for c in candidates], [self.paracetamol.id])

        ProcurementSessionService.add_item(session_id, self.paracetamol.id)
        self.assertEqual(ProcurementSessionService.get_candidates(session_id)["items"], [])

    def test_add_unknown_item(self):
        session_id = self.start()["id"]
        with self.assertRaises(NotFoundError):
            ProcurementSessionService.add_item(session_id, 9999)

    def test_quotes_only_for_listed_items_and_supplying_vendors(self):
        session_id = self.start()["id"]

        with self.assertRaises(ValidationError):
            ProcurementSessionService.set_quotes(session_id, {self.ibuprofen.id: {self.vendor_a.id: "0.04"}})

        ProcurementSessionService.add_item(session_id, self.gauze.id)
        with self.assertRaises(ValidationError):
            ProcurementSessionService.set_quotes(session_id, {self.gauze.id: {self.vendor_a.id: "1.00"}})

    def test_blank_quote_clears_entry(self):
        session_id = self.start()["id"]
        ProcurementSessionService.set_quotes(session_id, {self.paracetamol.id: {self.vendor_a.id: "0.09"}})
        ProcurementSessionService.set_quotes(session_id, {self.paracetamol.id: {self.vendor_a.id: ""}})

        session = ProcurementSession.objects.get(id=session_id)
        self.assertEqual(session.vendor_quotes, {})

    def test_best_price_is_highlighted(self):
        session_id = self.start()["id"]
        result = ProcurementSessionService.set_quotes(session_id, {
            str(self.paracetamol.id): {str(self.vendor_a.id): "0.09", str(self.vendor_b.id): "0.08"},
        })
        line = result["session"]["items"][0]
        self.assertEqual(line["best_price"], "0.08")
        self.assertEqual(line["winning_vendor_id"], self.vendor_b.id)

    def test_finalize_creates_draft_lpo_for_cheapest_vendor(self):
        session_id = self.start()["id"]
        ProcurementSessionService.set_quotes(session_id, {
            self.paracetamol.id: {self.vendor_a.id: "0.09", self.vendor_b.id: "0.08"},
        })

        result = ProcurementSessionService.finalize(session_id, user=self.user)

        self.assertEqual(result["count"], 1)
        lpo = LocalPurchaseOrder.objects.get()
        self.assertEqual(lpo.vendor, self.vendor_b)
        self.assertEqual(lpo.status, LocalPurchaseOrder.Status.DRAFT)
        self.assertEqual(lpo.grand_total, Decimal("0.08"))
        self.assertTrue(lpo.lpo_number.startswith("LPO-"))
        line = lpo.items.get()
        self.assertEqual(line.item, self.paracetamol)
        self.assertEqual(line.quantity, 1)
        self.assertEqual(line.unit_price, Decimal("0.08"))
        self.assertEqual(line.total, Decimal("0.08"))

        session = ProcurementSession.objects.get(id=session_id)
        self.assertEqual(session.status, ProcurementSession.Status.COMPLETED)
        self.assertIsNotNone(session.completed_at)

    def test_finalize_uses_entered_quantities(self):
        session_id = self.start()["id"]
        ProcurementSessionService.add_item(session_id, self.ibuprofen.id)
        ProcurementSessionService.set_quotes(session_id, {
            self.paracetamol.id: {self.vendor_b.id: "0.08"},
            self.ibuprofen.id: {self.vendor_a.id: "0.05"},
        })
        ProcurementSessionService.set_quantities(session_id, {self.paracetamol.id: 1000, self.ibuprofen.id: "200"})

        ProcurementSessionService.finalize(session_id, user=self.user)

        totals = dict(LocalPurchaseOrder.objects.values_list("vendor__code", "grand_total"))
        self.assertEqual(totals, {"VEND-001": Decimal("10.00"), "VEND-002": Decimal("80.00")})

    def test_saved_totals_add_up(self):
        session_id = self.start()["id"]
        ProcurementSessionService.add_item(session_id, self.ibuprofen.id)
        ProcurementSessionService.set_quotes(session_id, {
            self.paracetamol.id: {self.vendor_a.id: "0.0005"},
            self.ibuprofen.id: {self.vendor_a.id: "0.0007"},
        })
        ProcurementSessionService.set_quantities(session_id, {self.paracetamol.id: 3, self.ibuprofen.id: 3})

        ProcurementSessionService.finalize(session_id, user=self.user)

        lpo = LocalPurchaseOrder.objects.get()
        lines = list(lpo.items.order_by("id"))
        self.assertEqual([line.unit_price for line in lines], [Decimal("0.0005"), Decimal("0.0007")])
        self.assertEqual(lpo.grand_total, sum((line.total for line in lines), Decimal("0")))
        self.assertEqual(lpo.grand_total, Decimal("0.0036"))

    def test_unstorable_quotes_are_rejected(self):
        session_id = self.start()["id"]
        for bad in ("0.00005", "1e20", "cheap"):
            with self.assertRaises(ValidationError):
                ProcurementSessionService.set_quotes(session_id, {self.paracetamol.id: {self.vendor_a.id: bad}})

        self.assertEqual(ProcurementSession.objects.get(id=session_id).vendor_quotes, {})

    def test_oversized_quantity_is_rejected(self):
        session_id = self.start()["id"]
        with self.assertRaises(ValidationError):
            ProcurementSessionService.set_quantities(session_id, {self.paracetamol.id: "1e30"})

        self.assertEqual(ProcurementSession.objects.get(id=session_id).lpo_quantities, {})

    def test_order_too_large_leaves_session_open(self):
        session_id = self.start()["id"]
        ProcurementSessionService.set_quotes(session_id, {self.paracetamol.id: {self.vendor_a.id: "99999"}})
        ProcurementSessionService.set_quantities(session_id, {self.paracetamol.id: 2000000000})

        with self.assertRaises(ValidationError):
            ProcurementSessionService.finalize(session_id, user=self.user)

        self.assertFalse(LocalPurchaseOrder.objects.exists())
        self.assertEqual(ProcurementSession.objects.get(id=session_id).status, ProcurementSession.Status.DRAFT)

        ProcurementSessionService.set_quantities(session_id, {self.paracetamol.id: 100})
        self.assertEqual(ProcurementSessionService.finalize(session_id, user=self.user)["count"], 1)

    def test_invalid_quantity_is_rejected(self):
        session_id = self.start()["id"]
        with self.assertRaises(ValidationError):
            ProcurementSessionService.set_quantities(session_id, {self.paracetamol.id: 0})

    def test_finalize_without_quotes_creates_nothing(self):
        session_id = self.start()["id"]

        result = ProcurementSessionService.finalize(session_id, user=self.user)

        self.assertEqual(result["count"], 0)
        self.assertFalse(LocalPurchaseOrder.objects.exists())
        self.assertEqual(ProcurementSession.objects.get(id=session_id).status, ProcurementSession.Status.COMPLETED)

    def test_unquoted_items_are_left_out(self):
        session_id = self.start()["id"]
        ProcurementSessionService.add_item(session_id, self.gauze.id)
        ProcurementSessionService.set_quotes(session_id, {self.paracetamol.id: {self.vendor_a.id: "0.09"}})

        preview = ProcurementSessionService.preview(session_id)

        self.assertEqual(len(preview["drafts"]), 1)
        self.assertEqual(preview["unquoted_item_ids"], [self.gauze.id])

    def test_completed_session_is_frozen(self):
        session_id = self.start()["id"]
        ProcurementSessionService.finalize(session_id, user=self.user)

        with self.assertRaises(BusinessRuleError):
            ProcurementSessionService.finalize(session_id, user=self.user)
        with self.assertRaises(BusinessRuleError):
            ProcurementSessionService.add_item(session_id, self.gauze.id)


class ProcurementApiTests(ApiClientMixin, TestCase):

    def setUp(self):
        self.user = make_user()
        self.token = login(self.user)
        self.item = make_item("PAR500", "Paracetamol", bulk_store_reorder_level=500)
        make_stock(self.item, 200)
        self.vendor_a = make_vendor("VEND-001", "Alpha Pharma", [self.item])
        self.vendor_b = make_vendor("VEND-002", "Beta Medical", [self.item])

    def test_full_run(self):
        response = self.post_json("/api/stock/procurement/", {"location": "BULK_STORE"})
        self.assertEqual(response.status_code, 201)
        session_id = response.json()["id"]

        response = self.put_json(f"/api/stock/procurement/{session_id}/quotes/", {
            "quotes": {str(self.item.id): {str(self.vendor_a.id): 0.09, str(self.vendor_b.id): 0.08}},
        })
        self.assertEqual(response.status_code, 200)

        response = self.post_json(f"/api/stock/procurement/{session_id}/finalize/")
        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["count"], 1)
        self.assertEqual(body["purchase_orders"][0]["vendor_id"], self.vendor_b.id)
        self.assertEqual(Decimal(body["purchase_orders"][0]["grand_total"]), Decimal("0.08"))

        response = self.post_json(f"/api/stock/procurement/{session_id}/finalize/")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["code"], "business_rule")

    def test_requires_token(self):
        self.token = None
        response = self.get_json("/api/stock/procurement/")
        self.assertEqual(response.status_code, 401)

    def test_cashier_is_forbidden(self):
        cashier = make_user(User.RoleChoices.CASHIER)
        self.token = login(cashier)
        response = self.get_json("/api/stock/procurement/")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"]["code"], "permission_denied")

    def test_unknown_session(self):
        response = self.get_json("/api/stock/procurement/9999/")
        self.assertEqual(response.status_code, 404)

    def test_oversized_quote_is_a_validation_error(self):
        session_id = self.post_json("/api/stock/procurement/", {"location": "BULK_STORE"}).json()["id"]

        response = self.put_json(f"/api/stock/procurement/{session_id}/quotes/", {
            "quotes": {str(self.item.id): {str(self.vendor_a.id): "1e20"}},
        })

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["details"]["field"], "quotes")

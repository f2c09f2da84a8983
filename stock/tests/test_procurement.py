from decimal import Decimal

from django.test import SimpleTestCase

from stock.services.base_service import ValidationError
from stock.services.procurement import (
    CatalogItem, StockEntry, VendorEntry,
    find_low_stock_items, add_to_list, remove_from_list,
    parse_quote, relevant_vendors, best_prices, select_winning_vendor,
    resolve_quantity, build_draft_lpos, validate_quote, MAX_QUANTITY,
)


BULK = "BULK_STORE"
DISPENSARY = "DISPENSARY"

PAR500 = CatalogItem(id="PAR500", name="Paracetamol 500mg Tablet", dispensary_reorder_level=100,
                     bulk_store_reorder_level=500)
IBU200 = CatalogItem(id="IBU200", name="Ibuprofen 200mg Tablet", dispensary_reorder_level=50,
                     bulk_store_reorder_level=800)
AMO500 = CatalogItem(id="AMO500", name="Amoxicillin 500mg Capsule", dispensary_reorder_level=50,
                     bulk_store_reorder_level=500)

VENDOR_A = VendorEntry(id="A", name="Vendor A", supplies=frozenset({"PAR500", "IBU200"}))
VENDOR_B = VendorEntry(id="B", name="Vendor B", supplies=frozenset({"PAR500", "AMO500"}))
VENDOR_C = VendorEntry(id="C", name="Vendor C", supplies=frozenset({"GAUZE-S"}))


class LowStockListTests(SimpleTestCase):

    def test_paracetamol_below_reorder_level_is_listed(self):
        stocks = [StockEntry("PAR500", BULK, 200)]
        self.assertEqual(find_low_stock_items([PAR500], stocks, BULK), [PAR500])

    def test_on_hand_is_summed_across_batches(self):
        stocks = [StockEntry("PAR500", BULK, 300), StockEntry("PAR500", BULK, 250)]
        self.assertEqual(find_low_stock_items([PAR500], stocks, BULK), [])

    def test_quantity_equal_to_reorder_level_is_not_low(self):
        stocks = [StockEntry("PAR500", BULK, 500)]
        self.assertEqual(find_low_stock_items([PAR500], stocks, BULK), [])

    def test_only_target_location_counts(self):
        stocks = [StockEntry("PAR500", DISPENSARY, 5000), StockEntry("PAR500", BULK, 10)]
        self.assertEqual(find_low_stock_items([PAR500], stocks, BULK), [PAR500])

    def test_location_specific_reorder_level(self):
        stocks = [StockEntry("PAR500", DISPENSARY, 150)]
        # 150 is under the bulk level (500) but above the dispensary level (100)
        self.assertEqual(find_low_stock_items([PAR500], stocks, DISPENSARY), [])

    def test_item_without_stock_rows_counts_as_zero(self):
        self.assertEqual(find_low_stock_items([IBU200], [], BULK), [IBU200])

    def test_items_already_listed_are_excluded(self):
        stocks = [StockEntry("PAR500", BULK, 0), StockEntry("IBU200", BULK, 0)]
        low = find_low_stock_items([PAR500, IBU200], stocks, BULK, current_list=["PAR500"])
        self.assertEqual(low, [IBU200])

    def test_empty_inputs_yield_empty_list(self):
        self.assertEqual(find_low_stock_items([], [], BULK), [])

    def test_add_then_remove_restores_list(self):
        original = ["PAR500", "IBU200"]
        added = add_to_list(original, "AMO500")
        self.assertEqual(added, ["PAR500", "IBU200", "AMO500"])
        self.assertEqual(remove_from_list(added, "AMO500"), original)

    def test_add_is_idempotent(self):
        self.assertEqual(add_to_list(["PAR500"], "PAR500"), ["PAR500"])

    def test_remove_missing_item_is_noop(self):
        self.assertEqual(remove_from_list(["PAR500"], "IBU200"), ["PAR500"])


class PriceComparatorTests(SimpleTestCase):

    def test_parse_quote(self):
        self.assertEqual(parse_quote("0.08"), Decimal("0.08"))
        self.assertEqual(parse_quote(2), Decimal("2"))
        for invalid in (None, "", "abc", "0", 0, "-1", "NaN", "Infinity", True):
            self.assertIsNone(parse_quote(invalid), invalid)

    def test_relevant_vendors_supply_a_listed_item(self):
        self.assertEqual(relevant_vendors(["AMO500"], [VENDOR_A, VENDOR_B, VENDOR_C]), [VENDOR_B])
        self.assertEqual(relevant_vendors(["PAR500"], [VENDOR_A, VENDOR_B, VENDOR_C]), [VENDOR_A, VENDOR_B])
        self.assertEqual(relevant_vendors([], [VENDOR_A]), [])

    def test_best_price_ignores_invalid_entries(self):
        quotes = {"PAR500": {"A": "abc", "B": "0.08"}, "IBU200": {"A": "-3"}}
        self.assertEqual(best_prices(["PAR500", "IBU200"], [VENDOR_A, VENDOR_B], quotes),
                         {"PAR500": Decimal("0.08")})

    def test_quote_from_vendor_not_supplying_item_is_ignored(self):
        quotes = {"AMO500": {"A": "0.01", "B": "0.20"}}
        winner = select_winning_vendor("AMO500", [VENDOR_A, VENDOR_B], quotes)
        self.assertEqual(winner, (VENDOR_B, Decimal("0.20")))

    def test_cheapest_vendor_wins(self):
        quotes = {"PAR500": {"A": "0.09", "B": "0.08"}}
        self.assertEqual(select_winning_vendor("PAR500", [VENDOR_A, VENDOR_B], quotes),
                         (VENDOR_B, Decimal("0.08")))

    def test_tie_goes_to_first_vendor_in_catalog_order(self):
        quotes = {"PAR500": {"A": "0.08", "B": "0.08"}}
        self.assertEqual(select_winning_vendor("PAR500", [VENDOR_A, VENDOR_B], quotes)[0], VENDOR_A)
        self.assertEqual(select_winning_vendor("PAR500", [VENDOR_B, VENDOR_A], quotes)[0], VENDOR_B)

    def test_no_valid_quote_has_no_winner(self):
        self.assertIsNone(select_winning_vendor("PAR500", [VENDOR_A, VENDOR_B], {}))

    def test_validate_quote_accepts_storable_prices(self):
        self.assertEqual(validate_quote("0.0005"), Decimal("0.0005"))
        self.assertEqual(validate_quote(" 12.50 "), Decimal("12.50"))
        self.assertEqual(validate_quote("99999999999.9999"), Decimal("99999999999.9999"))

    def test_validate_quote_rejects_unstorable_prices(self):
        for bad in ("abc", "0", "-1", "NaN", "0.00005", "1.23456", "1e20", "100000000000"):
            with self.assertRaises(ValidationError, msg=bad):
                validate_quote(bad, "PAR500")


class DraftLpoTests(SimpleTestCase):

    def test_paracetamol_scenario(self):
        drafts = build_draft_lpos([PAR500], [VENDOR_A, VENDOR_B], {"PAR500": {"A": "0.09", "B": "0.08"}})

        self.assertEqual(len(drafts), 1)
        draft = drafts[0]
        self.assertEqual(draft.vendor_id, "B")
        self.assertEqual(len(draft.items), 1)
        line = draft.items[0]
        self.assertEqual(line.item_id, "PAR500")
        self.assertEqual(line.quantity, 1)
        self.assertEqual(line.unit_price, Decimal("0.08"))
        self.assertEqual(line.total, Decimal("0.08"))
        self.assertEqual(draft.grand_total, Decimal("0.08"))

    def test_items_are_grouped_by_winning_vendor(self):
        quotes = {
            "PAR500": {"A": "0.09", "B": "0.08"},
            "IBU200": {"A": "0.05"},
            "AMO500": {"B": "0.12"},
        }
        drafts = build_draft_lpos([PAR500, IBU200, AMO500], [VENDOR_A, VENDOR_B], quotes,
                                  {"PAR500": 1000, "IBU200": "300", "AMO500": 50})

        by_vendor = {draft.vendor_id: draft for draft in drafts}
        self.assertEqual(set(by_vendor), {"A", "B"})
        self.assertEqual([line.item_id for line in by_vendor["B"].items], ["PAR500", "AMO500"])
        self.assertEqual([line.item_id for line in by_vendor["A"].items], ["IBU200"])
        self.assertEqual(by_vendor["B"].grand_total, Decimal("80.00") + Decimal("6.00"))
        self.assertEqual(by_vendor["A"].grand_total, Decimal("15.00"))

    def test_grand_total_is_sum_of_line_totals(self):
        quotes = {"PAR500": {"A": "0.013"}, "IBU200": {"A": "1.237"}}
        drafts = build_draft_lpos([PAR500, IBU200], [VENDOR_A], quotes, {"PAR500": 7, "IBU200": 3})
        draft = drafts[0]
        self.assertEqual(draft.grand_total,
                         sum((line.quantity * line.unit_price for line in draft.items), Decimal("0")))

    def test_each_quoted_item_lands_in_exactly_one_draft(self):
        quotes = {"PAR500": {"A": "1", "B": "1"}, "IBU200": {"A": "2"}, "AMO500": {"B": "3"}}
        drafts = build_draft_lpos([PAR500, IBU200, AMO500], [VENDOR_A, VENDOR_B], quotes)
        placed = [line.item_id for draft in drafts for line in draft.items]
        self.assertEqual(sorted(placed), ["AMO500", "IBU200", "PAR500"])

    def test_unquoted_items_are_excluded(self):
        drafts = build_draft_lpos([PAR500, IBU200], [VENDOR_A, VENDOR_B], {"PAR500": {"B": "0.08"}})
        placed = [line.item_id for draft in drafts for line in draft.items]
        self.assertEqual(placed, ["PAR500"])

    def test_no_quotes_produce_no_drafts(self):
        self.assertEqual(build_draft_lpos([PAR500, IBU200], [VENDOR_A, VENDOR_B], {}), [])

    def test_to_dict_uses_string_money(self):
        draft = build_draft_lpos([PAR500], [VENDOR_B], {"PAR500": {"B": "0.08"}}, {"PAR500": 2})[0]
        self.assertEqual(draft.to_dict(), {
            "vendor_id": "B",
            "vendor_name": "Vendor B",
            "items": [{
                "item_id": "PAR500",
                "item_name": "Paracetamol 500mg Tablet",
                "quantity": 2,
                "unit_price": "0.08",
                "total": "0.16",
            }],
            "grand_total": "0.16",
        })

    def test_quantity_defaults_to_one(self):
        self.assertEqual(resolve_quantity({}, "PAR500"), 1)
        self.assertEqual(resolve_quantity({"PAR500": ""}, "PAR500"), 1)
        self.assertEqual(resolve_quantity({"PAR500": "25"}, "PAR500"), 25)

    def test_invalid_quantities_are_rejected(self):
        for bad in (0, -2, "1.5", "ten", True):
            with self.assertRaises(ValidationError):
                resolve_quantity({"PAR500": bad}, "PAR500")

    def test_quantity_must_fit_an_order_line(self):
        self.assertEqual(resolve_quantity({"PAR500": MAX_QUANTITY}, "PAR500"), MAX_QUANTITY)
        for bad in (MAX_QUANTITY + 1, "1e30"):
            with self.assertRaises(ValidationError):
                resolve_quantity({"PAR500": bad}, "PAR500")

    def test_order_total_must_fit_a_purchase_order(self):
        quotes = {"PAR500": {"A": "60000000000"}, "IBU200": {"A": "50000000000"}}
        with self.assertRaises(ValidationError):
            build_draft_lpos([PAR500, IBU200], [VENDOR_A], quotes)
        with self.assertRaises(ValidationError):
            build_draft_lpos([PAR500], [VENDOR_A], {"PAR500": {"A": "1000"}}, {"PAR500": MAX_QUANTITY})

    def test_over_precise_stored_quote_is_rejected(self):
        with self.assertRaises(ValidationError):
            build_draft_lpos([PAR500], [VENDOR_A], {"PAR500": {"A": "0.00005"}}, {"PAR500": 3})

from decimal import Decimal

from django.test import TestCase

from billing.models import Bill, BillLine, ClinicService, Patient
from billing.services import BillService, ClinicServiceService, PatientService
from billing.services.bill_service import settle_payment
from main.models import User
from stock.services.base_service import BusinessRuleError, NotFoundError, ValidationError
from stock.tests.helpers import ApiClientMixin, make_item, make_user, login


class SettlePaymentTests(TestCase):

    def test_cash_gives_change(self):
        self.assertEqual(
            settle_payment(Bill.PaymentMethod.CASH, Decimal("7.50"), "10"),
            (Bill.PaymentStatus.PAID, Decimal("10.00"), Decimal("2.50")),
        )

    def test_cash_must_cover_total(self):
        with self.assertRaises(ValidationError):
            settle_payment(Bill.PaymentMethod.CASH, Decimal("7.50"), "5")
        with self.assertRaises(ValidationError):
            settle_payment(Bill.PaymentMethod.CASH, Decimal("7.50"), None)

    def test_invoice_stays_unpaid(self):
        status, tendered, change = settle_payment(Bill.PaymentMethod.INVOICE, Decimal("7.50"), "100")
        self.assertEqual(status, Bill.PaymentStatus.UNPAID)
        self.assertEqual(tendered, Decimal("0"))

    def test_mobile_money_is_exact(self):
        self.assertEqual(
            settle_payment(Bill.PaymentMethod.MOBILE_MONEY, Decimal("7.50"), None),
            (Bill.PaymentStatus.PAID, Decimal("7.50"), Decimal("0")),
        )


class BillServiceTests(TestCase):

    def setUp(self):
        self.user = make_user(User.RoleChoices.CASHIER)
        self.paracetamol = make_item("PAR500", "Paracetamol", selling_price=Decimal("0.10"))
        self.amoxicillin = make_item("AMO500", "Amoxicillin", formulation="CAPSULE",
                                     selling_price=Decimal("0.25"))
        self.consultation = ClinicService.objects.create(name="Consultation", fee=Decimal("5.00"))

    def create(self, **overrides):
        data = {
            "patient_name": "Jane Doe",
            "items": [{"item_id": self.paracetamol.id, "quantity": 20}],
            "services": [self.consultation.id],
            "payment_method": "CASH",
            "amount_tendered": "10",
            "user": self.user,
        }
        data.update(overrides)
        return BillService.create(**data)

    def test_walk_in_cash_bill(self):
        bill = self.create()["bill"]

        self.assertTrue(bill["bill_number"].startswith("BILL-"))
        self.assertEqual(bill["bill_type"], Bill.BillType.WALK_IN)
        self.assertEqual(Decimal(bill["subtotal"]), Decimal("7.00"))
        self.assertEqual(Decimal(bill["grand_total"]), Decimal("7.00"))
        self.assertEqual(Decimal(bill["change"]), Decimal("3.00"))
        self.assertEqual(bill["payment_status"], Bill.PaymentStatus.PAID)
        self.assertIsNotNone(bill["paid_at"])

        lines = {line["line_type"]: line for line in bill["lines"]}
        self.assertEqual(lines["ITEM"]["description"], "Paracetamol Tablet")
        self.assertEqual(Decimal(lines["ITEM"]["total"]), Decimal("2.00"))
        self.assertEqual(lines["SERVICE"]["description"], "Consultation")

    def test_duplicate_items_are_merged(self):
        result = self.create(items=[
            {"item_id": self.paracetamol.id, "quantity": 2},
            {"item_id": self.paracetamol.id, "quantity": 3},
            {"item_id": self.amoxicillin.id, "quantity": 4},
        ], services=[self.consultation.id, self.consultation.id])

        bill = Bill.objects.get(id=result["id"])
        self.assertEqual(bill.lines.count(), 3)
        self.assertEqual(bill.lines.get(item=self.paracetamol).quantity, 5)
        self.assertEqual(bill.subtotal, Decimal("6.50"))

    def test_discount(self):
        bill = self.create(discount="1.50")["bill"]
        self.assertEqual(Decimal(bill["grand_total"]), Decimal("5.50"))

        with self.assertRaises(ValidationError):
            self.create(discount="50")

    def test_opd_requires_prescription_number(self):
        with self.assertRaises(ValidationError):
            self.create(bill_type="OPD")

        bill = self.create(bill_type="opd", prescription_number="RX-204")["bill"]
        self.assertEqual(bill["bill_type"], Bill.BillType.OPD)
        self.assertEqual(bill["prescription_number"], "RX-204")

    def test_bill_type_label_is_accepted(self):
        self.assertEqual(self.create(bill_type="Walk-in")["bill"]["bill_type"], Bill.BillType.WALK_IN)

    def test_service_only_bill(self):
        bill = self.create(items=None)["bill"]
        self.assertEqual([line["line_type"] for line in bill["lines"]], [BillLine.LineType.SERVICE])

    def test_empty_bill_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.create(items=[], services=[])

    def test_unknown_or_inactive_lines(self):
        with self.assertRaises(NotFoundError):
            self.create(items=[{"item_id": 9999, "quantity": 1}])

        self.consultation.is_active = False
        self.consultation.save()
        with self.assertRaises(NotFoundError):
            self.create()

    def test_registered_patient_name_is_used(self):
        patient = Patient.objects.create(first_name="John", last_name="Mwangi")
        bill = self.create(patient_name="", patient_id=patient.id)["bill"]
        self.assertEqual(bill["patient_name"], "John Mwangi")
        self.assertEqual(bill["patient_id"], patient.id)

    def test_invoice_then_pay(self):
        bill_id = self.create(payment_method="INVOICE", amount_tendered=None)["id"]
        self.assertEqual(Bill.objects.get(id=bill_id).payment_status, Bill.PaymentStatus.UNPAID)

        with self.assertRaises(ValidationError):
            BillService.mark_paid(bill_id, payment_method="INVOICE")

        result = BillService.mark_paid(bill_id, payment_method="MOBILE_MONEY", transaction_id="MP123", user=self.user)

        bill = result["bill"]
        self.assertEqual(bill["payment_status"], Bill.PaymentStatus.PAID)
        self.assertEqual(bill["transaction_id"], "MP123")

        with self.assertRaises(BusinessRuleError):
            BillService.mark_paid(bill_id, payment_method="CASH", amount_tendered="100")

    def test_stats(self):
        self.create()
        self.create(payment_method="INVOICE", amount_tendered=None)
        self.create(bill_type="OPD", prescription_number="RX-1", payment_method="BANK")

        stats = BillService.get_stats("today")

        self.assertEqual(stats["bill_count"], 3)
        self.assertEqual(Decimal(stats["revenue"]), Decimal("14.00"))
        self.assertEqual(Decimal(stats["outstanding"]), Decimal("7.00"))
        self.assertEqual(stats["outstanding_count"], 1)
        self.assertEqual(stats["by_type"], {"WALK_IN": 2, "OPD": 1})
        self.assertEqual(set(stats["revenue_by_method"]), {"CASH", "BANK"})


class PatientAndServiceTests(TestCase):

    def test_patient_crud(self):
        patient_id = PatientService.create(first_name="Amina", last_name="Otieno", gender="female",
                                           date_of_birth="1990-04-12")["id"]

        PatientService.update(patient_id, phone="0700 000 001")
        patient = PatientService.get(patient_id)["patient"]
        self.assertEqual(patient["gender"], Patient.Gender.FEMALE)
        self.assertEqual(patient["phone"], "0700 000 001")
        self.assertEqual(PatientService.list(search="otieno")["pagination"]["total_items"], 1)

    def test_patient_validation(self):
        with self.assertRaises(ValidationError):
            PatientService.create(first_name="")
        with self.assertRaises(ValidationError):
            PatientService.create(first_name="Amina", gender="unknown")
        with self.assertRaises(ValidationError):
            PatientService.create(first_name="Amina", date_of_birth="12/04/1990")

    def test_service_names_are_unique(self):
        ClinicServiceService.create(name="Dressing", fee="3.00")
        with self.assertRaises(ValidationError):
            ClinicServiceService.create(name="dressing", fee="4.00")

    def test_deactivated_services_are_hidden(self):
        service_id = ClinicServiceService.create(name="Dressing", fee="3.00")["id"]
        ClinicServiceService.deactivate(service_id)
        self.assertEqual(ClinicServiceService.list()["services"], [])
        self.assertEqual(len(ClinicServiceService.list(active_only=False)["services"]), 1)


class BillApiTests(ApiClientMixin, TestCase):

    def setUp(self):
        self.token = login(make_user(User.RoleChoices.CASHIER))
        self.item = make_item("PAR500", "Paracetamol", selling_price=Decimal("0.10"))

    def test_create_bill(self):
        response = self.post_json("/api/billing/bills/", {
            "patient_name": "Jane Doe",
            "items": [{"item_id": self.item.id, "quantity": 10}],
            "payment_method": "CASH",
            "amount_tendered": 5,
        })
        self.assertEqual(response.status_code, 201)
        self.assertEqual(Decimal(response.json()["bill"]["change"]), Decimal("4.00"))

    def test_short_cash_is_rejected(self):
        response = self.post_json("/api/billing/bills/", {
            "patient_name": "Jane Doe",
            "items": [{"item_id": self.item.id, "quantity": 10}],
            "amount_tendered": "0.50",
        })
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["details"]["field"], "amount_tendered")

    def test_pharmacy_cannot_take_payments(self):
        self.token = login(make_user(User.RoleChoices.PHARMACY))
        response = self.post_json("/api/billing/bills/", {"patient_name": "Jane Doe"})
        self.assertEqual(response.status_code, 403)

    def test_pharmacy_can_view_patients(self):
        self.token = login(make_user(User.RoleChoices.PHARMACY))
        response = self.get_json("/api/billing/patients/")
        self.assertEqual(response.status_code, 200)

    def test_stats_endpoint(self):
        response = self.get_json("/api/billing/bills/stats/", period="this_month")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["bill_count"], 0)

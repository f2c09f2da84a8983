from main.models import User
from stock.views import BaseStockView

from .services import PatientService, ClinicServiceService, BillService, DispenseService

Role = User.RoleChoices


class BillingView(BaseStockView):
    allowed_roles = (Role.ADMIN, Role.CASHIER)


class CounterView(BaseStockView):
    """Readable by the cashier desk and the dispensary alike."""
    allowed_roles = (Role.ADMIN, Role.CASHIER, Role.PHARMACY)


class DispensingView(BaseStockView):
    allowed_roles = (Role.ADMIN, Role.PHARMACY)


def _without(data: dict, *keys) -> dict:
    return {k: v for k, v in data.items() if k not in keys}


# ==================== PATIENTS ====================

class PatientListView(CounterView):

    def get(self, request):
        result = PatientService.list(
            page=self.query_int(request, "page", 1),
            per_page=self.query_int(request, "per_page", 20),
            search=request.GET.get("search"),
        )
        return self.success(result)

    def post(self, request):
        data = self.get_json_body(request)
        return self.success(PatientService.create(user=request.user, **_without(data, "user")), 201)


class PatientDetailView(CounterView):

    def get(self, request, patient_id):
        return self.success(PatientService.get(patient_id))

    def put(self, request, patient_id):
        data = self.get_json_body(request)
        return self.success(PatientService.update(patient_id, user=request.user, **_without(data, "user", "patient_id")))

    def delete(self, request, patient_id):
        return self.success(PatientService.delete(patient_id, user=request.user))


# ==================== SERVICES ====================

class ClinicServiceListView(CounterView):

    def get(self, request):
        return self.success(ClinicServiceService.list(active_only=self.query_bool(request, "active_only", True)))

    def post(self, request):
        data = self.get_json_body(request)
        return self.success(ClinicServiceService.create(user=request.user, **_without(data, "user")), 201)


class ClinicServiceDetailView(CounterView):

    def get(self, request, service_id):
        return self.success(ClinicServiceService.get(service_id))

    def put(self, request, service_id):
        data = self.get_json_body(request)
        result = ClinicServiceService.update(service_id, user=request.user, **_without(data, "user", "service_id"))
        return self.success(result)

    def delete(self, request, service_id):
        return self.success(ClinicServiceService.deactivate(service_id, user=request.user))


# ==================== BILLS ====================

class BillListView(BillingView):

    def get(self, request):
        result = BillService.list(
            page=self.query_int(request, "page", 1),
            per_page=self.query_int(request, "per_page", 20),
            payment_status=request.GET.get("payment_status"),
            bill_type=request.GET.get("bill_type"),
            search=request.GET.get("search"),
            date_from=self.parse_date(request.GET.get("date_from"), "date_from"),
            date_to=self.parse_date(request.GET.get("date_to"), "date_to"),
        )
        return self.success(result)

    def post(self, request):
        data = self.get_json_body(request)
        result = BillService.create(
            patient_name=data.get("patient_name", ""),
            patient_id=data.get("patient_id"),
            bill_type=data.get("bill_type", "WALK_IN"),
            prescription_number=data.get("prescription_number", ""),
            items=data.get("items"),
            services=data.get("services"),
            discount=data.get("discount", 0),
            payment_method=data.get("payment_method", "CASH"),
            amount_tendered=data.get("amount_tendered"),
            transaction_id=data.get("transaction_id", ""),
            dispensing_location=data.get("dispensing_location", "DISPENSARY"),
            user=request.user,
        )
        return self.success(result, 201)


class BillStatsView(BillingView):

    def get(self, request):
        return self.success(BillService.get_stats(period=request.GET.get("period", "today")))


class BillDetailView(CounterView):

    def get(self, request, bill_id):
        return self.success(BillService.get(bill_id))


class BillPayView(BillingView):

    def post(self, request, bill_id):
        data = self.get_json_body(request)
        result = BillService.mark_paid(
            bill_id,
            payment_method=data.get("payment_method", "CASH"),
            amount_tendered=data.get("amount_tendered"),
            transaction_id=data.get("transaction_id", ""),
            user=request.user,
        )
        return self.success(result)


# ==================== DISPENSING ====================

class PendingDispenseView(DispensingView):

    def get(self, request):
        result = DispenseService.pending(
            page=self.query_int(request, "page", 1),
            per_page=self.query_int(request, "per_page", 20),
            location=request.GET.get("location"),
        )
        return self.success(result)


class DispenseView(DispensingView):

    def post(self, request, bill_id):
        return self.success(DispenseService.dispense(bill_id, user=request.user))

from django.urls import path
from . import views

app_name = "billing"

urlpatterns = [
    path("patients/", views.PatientListView.as_view(), name="patient-list"),
    path("patients/<int:patient_id>/", views.PatientDetailView.as_view(), name="patient-detail"),

    path("services/", views.ClinicServiceListView.as_view(), name="service-list"),
    path("services/<int:service_id>/", views.ClinicServiceDetailView.as_view(), name="service-detail"),

    path("bills/", views.BillListView.as_view(), name="bill-list"),
    path("bills/stats/", views.BillStatsView.as_view(), name="bill-stats"),
    path("bills/<int:bill_id>/", views.BillDetailView.as_view(), name="bill-detail"),
    path("bills/<int:bill_id>/pay/", views.BillPayView.as_view(), name="bill-pay"),

    path("dispense/pending/", views.PendingDispenseView.as_view(), name="dispense-pending"),
    path("dispense/<int:bill_id>/", views.DispenseView.as_view(), name="dispense"),
]

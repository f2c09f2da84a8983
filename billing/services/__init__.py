from .patient_service import PatientService
from .clinic_service_service import ClinicServiceService
from .bill_service import BillService
from .dispense_service import DispenseService


__all__ = [
    "PatientService",
    "ClinicServiceService",
    "BillService",
    "DispenseService",
]

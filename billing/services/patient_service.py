import logging
from typing import Dict, Any

from django.db import transaction
from django.db.models import Q
from django.utils.dateparse import parse_date

from billing.models import Patient
from main.services.audit_service import AuditService
from stock.services.base_service import (
    BaseService, success_response, paginate_queryset, ValidationError
)


logger = logging.getLogger(__name__)


class PatientService(BaseService):
    model = Patient

    TEXT_FIELDS = ["first_name", "last_name", "phone", "address"]

    @classmethod
    def serialize(cls, patient: Patient) -> Dict[str, Any]:
        return {
            "id": patient.id,
            "uuid": str(patient.uuid),
            "first_name": patient.first_name,
            "last_name": patient.last_name,
            "full_name": patient.full_name,
            "phone": patient.phone,
            "date_of_birth": patient.date_of_birth.isoformat() if patient.date_of_birth else None,
            "gender": patient.gender,
            "address": patient.address,
            "created_at": patient.created_at.isoformat(),
        }

    @classmethod
    def _clean(cls, data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
        cleaned = {}
        for field in cls.TEXT_FIELDS:
            if field in data:
                cleaned[field] = str(data[field] or "").strip()

        if (not partial or "first_name" in data) and not cleaned.get("first_name"):
            raise ValidationError("First name is required", "first_name")

        if "gender" in data:
            gender = str(data["gender"] or "").strip().upper()
            if gender and gender not in Patient.Gender.values:
                raise ValidationError(
                    f"Invalid gender. Must be one of: {', '.join(Patient.Gender.values)}", "gender"
                )
            cleaned["gender"] = gender

        if "date_of_birth" in data:
            raw = data["date_of_birth"]
            if raw in (None, ""):
                cleaned["date_of_birth"] = None
            else:
                parsed = parse_date(str(raw))
                if parsed is None:
                    raise ValidationError("date_of_birth must be a date (YYYY-MM-DD)", "date_of_birth")
                cleaned["date_of_birth"] = parsed

        return cleaned

    @classmethod
    def list(cls, page: int = 1, per_page: int = 20, search: str = None) -> Dict[str, Any]:
        queryset = cls.model.objects.all()
        if search:
            queryset = queryset.filter(
                Q(first_name__icontains=search) |
                Q(last_name__icontains=search) |
                Q(phone__icontains=search)
            )

        patients, pagination = paginate_queryset(queryset, page, per_page)

        return success_response({
            "patients": [cls.serialize(patient) for patient in patients],
            "pagination": pagination,
        })

    @classmethod
    def get(cls, patient_id: int) -> Dict[str, Any]:
        return success_response({"patient": cls.serialize(cls.get_or_404(patient_id))})

    @classmethod
    @transaction.atomic
    def create(cls, user=None, **data) -> Dict[str, Any]:
        patient = cls.model.objects.create(**cls._clean(data))
        AuditService.log(user, "patient.created", {"patient_id": patient.id})
        return success_response({"id": patient.id, "patient": cls.serialize(patient)}, "Patient registered")

    @classmethod
    @transaction.atomic
    def update(cls, patient_id: int, user=None, **data) -> Dict[str, Any]:
        patient = cls.get_or_404(patient_id)
        cleaned = cls._clean(data, partial=True)
        for field, value in cleaned.items():
            setattr(patient, field, value)
        patient.save()

        AuditService.log(user, "patient.updated", {"patient_id": patient.id, "fields": sorted(cleaned)})
        return success_response({"patient": cls.serialize(patient)}, "Patient updated")

    @classmethod
    @transaction.atomic
    def delete(cls, patient_id: int, user=None) -> Dict[str, Any]:
        patient = cls.get_or_404(patient_id)
        name = patient.full_name
        # Bills keep the patient name, so history survives the deletion
        patient.delete()
        AuditService.log(user, "patient.deleted", {"patient_id": patient_id, "name": name})
        return success_response(message=f"Patient {name} deleted")

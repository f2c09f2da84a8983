from django.conf import settings

from main.models import ClinicSettings
from .audit_service import AuditService


class ClinicSettingsService:

    EDITABLE_FIELDS = ['clinic_name', 'address', 'phone', 'currency', 'usage_history_days', 'expiry_warning_days']

    @staticmethod
    def serialize(clinic):
        return {
            'clinic_name': clinic.clinic_name,
            'address': clinic.address,
            'phone': clinic.phone,
            'currency': clinic.currency,
            'usage_history_days': clinic.usage_history_days,
            'expiry_warning_days': clinic.expiry_warning_days,
            'updated_at': clinic.updated_at.isoformat() if clinic.updated_at else None,
        }

    @staticmethod
    def get_settings():
        return ClinicSettingsService.serialize(ClinicSettings.load())

    @staticmethod
    def update_settings(updated_by=None, **kwargs):
        clinic, _ = ClinicSettings.objects.get_or_create(pk=1, defaults=settings.CLINIC_DEFAULTS)

        errors = {}
        if 'clinic_name' in kwargs and not str(kwargs['clinic_name'] or '').strip():
            errors['clinic_name'] = 'Clinic name is required'
        if 'currency' in kwargs:
            currency = str(kwargs['currency'] or '').strip().upper()
            if len(currency) != 3 or not currency.isalpha():
                errors['currency'] = 'Currency must be a 3-letter ISO code'
            else:
                kwargs['currency'] = currency
        for field in ('usage_history_days', 'expiry_warning_days'):
            if field in kwargs:
                try:
                    value = int(kwargs[field])
                except (TypeError, ValueError):
                    value = 0
                if value < 1:
                    errors[field] = f'{field} must be a positive whole number'
                else:
                    kwargs[field] = value

        if errors:
            return {'success': False, 'message': 'Invalid clinic settings', 'errors': errors}

        changed = []
        for field in ClinicSettingsService.EDITABLE_FIELDS:
            if field in kwargs:
                setattr(clinic, field, kwargs[field])
                changed.append(field)

        clinic.save()
        AuditService.log(updated_by, 'settings.updated', {'fields': changed})

        return {
            'success': True,
            'message': 'Clinic settings updated',
            'settings': ClinicSettingsService.serialize(clinic),
        }

from django import forms
from django.contrib import admin
from django.contrib.auth.hashers import make_password
from django.utils.translation import gettext_lazy as _
from unfold.admin import ModelAdmin
from unfold.decorators import display
from unfold.contrib.filters.admin import RangeDateTimeFilter

from .models import User, Session, AuditLog, ClinicSettings


class UserAdminForm(forms.ModelForm):
    """User form that hashes the password it is given"""
    password = forms.CharField(
        label=_("Password"),
        widget=forms.PasswordInput(attrs={'placeholder': 'Enter password'}),
        help_text=_("It will be securely hashed."),
        required=False,
    )

    class Meta:
        model = User
        fields = '__all__'

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        if self.instance and self.instance.pk:
            self.fields['password'].help_text = _(
                "Leave blank to keep the current password. Enter a new password to change it."
            )
        else:
            self.fields['password'].required = True

    def clean_password(self):
        password = self.cleaned_data.get('password')
        if self.instance.pk and not password:
            return None
        if password and len(password) < 6:
            raise forms.ValidationError(_("Password must be at least 6 characters long."))
        return password

    def save(self, commit=True):
        user = super().save(commit=False)
        password = self.cleaned_data.get('password')
        if password:
            user.password = make_password(password)
        elif user.pk:
            user.password = User.objects.filter(pk=user.pk).values_list('password', flat=True).first()
        if commit:
            user.save()
        return user


@admin.register(User)
class UserAdmin(ModelAdmin):
    form = UserAdminForm
    list_display = ['id', 'full_name', 'email', 'role_badge', 'status_badge', 'last_login_at']
    list_filter = [
        'role',
        'status',
        'is_deleted',
        ('last_login_at', RangeDateTimeFilter),
    ]
    search_fields = ['first_name', 'last_name', 'email']
    list_filter_submit = True
    readonly_fields = ['last_login_at', 'last_login_ip']

    fieldsets = (
        (_('Personal Information'), {
            'fields': ('first_name', 'last_name', 'email'),
            'classes': ['tab'],
        }),
        (_('Access & Security'), {
            'fields': ('role', 'status', 'is_deleted', 'password'),
            'classes': ['tab'],
        }),
        (_('Activity Tracking'), {
            'fields': ('last_login_at', 'last_login_ip'),
            'classes': ['tab'],
        }),
    )

    @display(description=_("Name"), ordering='first_name')
    def full_name(self, obj):
        return obj.display_name

    @display(description=_("Role"), label=True)
    def role_badge(self, obj):
        colors = {
            'ADMIN': 'danger',
            'CASHIER': 'success',
            'PHARMACY': 'info',
        }
        return colors.get(obj.role, 'info'), obj.get_role_display()

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        if obj.status == 'ACTIVE':
            return 'success', obj.get_status_display()
        return 'danger', obj.get_status_display()


@admin.register(Session)
class SessionAdmin(ModelAdmin):
    list_display = ['id', 'user', 'ip_address', 'user_agent', 'last_activity']
    list_filter = [
        ('last_activity', RangeDateTimeFilter),
    ]
    search_fields = ['ip_address', 'user__email']
    list_filter_submit = True
    readonly_fields = ['user', 'ip_address', 'user_agent', 'payload', 'last_activity', 'created_at']


@admin.register(AuditLog)
class AuditLogAdmin(ModelAdmin):
    list_display = ['timestamp', 'user_display_name', 'action']
    list_filter = [
        'action',
        ('timestamp', RangeDateTimeFilter),
    ]
    search_fields = ['user_display_name', 'action']
    list_filter_submit = True
    readonly_fields = ['uuid', 'user', 'user_display_name', 'action', 'details', 'timestamp']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(ClinicSettings)
class ClinicSettingsAdmin(ModelAdmin):
    list_display = ['clinic_name', 'currency', 'phone', 'updated_at']

    def has_add_permission(self, request):
        return not ClinicSettings.objects.exists()

    def has_delete_permission(self, request, obj=None):
        return False

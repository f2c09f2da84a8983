from django.contrib.auth.hashers import make_password
from django.core.exceptions import ValidationError
from django.core.paginator import Paginator
from django.core.validators import validate_email
from django.db.models import Q

from main.models import User, Session
from .audit_service import AuditService


class UserService:

    VALID_ROLES = [choice for choice, _ in User.RoleChoices.choices]
    VALID_STATUSES = [choice for choice, _ in User.UserStatus.choices]
    MIN_PASSWORD_LENGTH = 6

    @staticmethod
    def _get_base_queryset(include_deleted=False):
        if include_deleted:
            return User.objects.all()
        return User.objects.filter(is_deleted=False)

    @staticmethod
    def serialize_user(user):
        return {
            'id': user.id,
            'uuid': str(user.uuid),
            'first_name': user.first_name,
            'last_name': user.last_name,
            'full_name': user.display_name,
            'email': user.email,
            'role': user.role,
            'status': user.status,
            'is_deleted': user.is_deleted,
            'last_login_at': user.last_login_at.isoformat() if user.last_login_at else None,
            'last_login_ip': user.last_login_ip,
        }

    @staticmethod
    def get_all_users(page=1, per_page=20, search=None, role=None, status=None,
                      order_by='first_name', include_deleted=False):
        queryset = UserService._get_base_queryset(include_deleted)

        if search:
            queryset = queryset.filter(
                Q(email__icontains=search) |
                Q(first_name__icontains=search) |
                Q(last_name__icontains=search)
            )

        if role:
            queryset = queryset.filter(role=role)

        if status:
            queryset = queryset.filter(status=status)

        if order_by.lstrip('-') not in ('id', 'first_name', 'last_name', 'email', 'role', 'created_at'):
            order_by = 'first_name'
        queryset = queryset.order_by(order_by)

        paginator = Paginator(queryset, per_page)
        page_obj = paginator.get_page(page)

        return {
            'users': [UserService.serialize_user(user) for user in page_obj.object_list],
            'pagination': {
                'current_page': page_obj.number,
                'total_pages': paginator.num_pages,
                'total_users': paginator.count,
                'per_page': per_page,
                'has_next': page_obj.has_next(),
                'has_previous': page_obj.has_previous()
            }
        }

    @staticmethod
    def get_user_by_id(user_id, include_deleted=False):
        try:
            user = UserService._get_base_queryset(include_deleted).get(id=user_id)
        except User.DoesNotExist:
            return {'success': False, 'message': 'User not found', 'error_code': 'NOT_FOUND'}

        return {'success': True, 'user': UserService.serialize_user(user)}

    @staticmethod
    def _validate(first_name, last_name, email, role, status):
        if not first_name or not first_name.strip():
            return 'first_name', 'First name is required'
        if not last_name or not last_name.strip():
            return 'last_name', 'Last name is required'
        try:
            validate_email(email or '')
        except ValidationError:
            return 'email', 'A valid email is required'
        if role not in UserService.VALID_ROLES:
            return 'role', f'Invalid role. Must be one of: {", ".join(UserService.VALID_ROLES)}'
        if status not in UserService.VALID_STATUSES:
            return 'status', f'Invalid status. Must be one of: {", ".join(UserService.VALID_STATUSES)}'
        return None, None

    @staticmethod
    def create_user(first_name, last_name, email, password, role='PHARMACY', status='ACTIVE', created_by=None):
        field, message = UserService._validate(first_name, last_name, email, role, status)
        if field:
            return {'success': False, 'message': message, 'field': field, 'error_code': 'VALIDATION_ERROR'}

        if not password or len(str(password)) < UserService.MIN_PASSWORD_LENGTH:
            return {
                'success': False,
                'message': f'Password must be at least {UserService.MIN_PASSWORD_LENGTH} characters',
                'field': 'password',
                'error_code': 'VALIDATION_ERROR',
            }

        email = email.strip().lower()
        if User.objects.filter(email__iexact=email).exists():
            return {'success': False, 'message': 'Email already exists', 'field': 'email', 'error_code': 'DUPLICATE_EMAIL'}

        user = User.objects.create(
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            email=email,
            password=make_password(str(password)),
            role=role,
            status=status,
        )

        AuditService.log(created_by, 'user.created', {'user_id': user.id, 'email': user.email, 'role': role})

        return {
            'success': True,
            'message': 'User created successfully',
            'user': UserService.serialize_user(user)
        }

    @staticmethod
    def update_user(user_id, updated_by=None, **kwargs):
        try:
            user = User.objects.get(id=user_id, is_deleted=False)
        except User.DoesNotExist:
            return {'success': False, 'message': 'User not found', 'error_code': 'NOT_FOUND'}

        first_name = kwargs.get('first_name', user.first_name)
        last_name = kwargs.get('last_name', user.last_name)
        email = kwargs.get('email', user.email)
        role = kwargs.get('role', user.role)
        status = kwargs.get('status', user.status)

        field, message = UserService._validate(first_name, last_name, email, role, status)
        if field:
            return {'success': False, 'message': message, 'field': field, 'error_code': 'VALIDATION_ERROR'}

        email = email.strip().lower()
        if User.objects.filter(email__iexact=email).exclude(id=user_id).exists():
            return {'success': False, 'message': 'Email already exists', 'field': 'email', 'error_code': 'DUPLICATE_EMAIL'}

        user.first_name = first_name.strip()
        user.last_name = last_name.strip()
        user.email = email
        user.role = role
        user.status = status

        password = kwargs.get('password')
        if password:
            if len(str(password)) < UserService.MIN_PASSWORD_LENGTH:
                return {
                    'success': False,
                    'message': f'Password must be at least {UserService.MIN_PASSWORD_LENGTH} characters',
                    'field': 'password',
                    'error_code': 'VALIDATION_ERROR',
                }
            user.password = make_password(str(password))

        user.save()

        if status == User.UserStatus.SUSPENDED:
            Session.objects.filter(user=user).delete()

        changed = sorted(k for k in kwargs if k != 'password')
        AuditService.log(updated_by, 'user.updated', {'user_id': user.id, 'fields': changed})

        return {
            'success': True,
            'message': 'User updated successfully',
            'user': UserService.serialize_user(user)
        }

    @staticmethod
    def delete_user(user_id, deleted_by=None):
        try:
            user = User.objects.get(id=user_id, is_deleted=False)
        except User.DoesNotExist:
            return {'success': False, 'message': 'User not found', 'error_code': 'NOT_FOUND'}

        if deleted_by is not None and deleted_by.id == user.id:
            return {'success': False, 'message': 'You cannot delete your own account', 'error_code': 'FORBIDDEN'}

        user.is_deleted = True
        user.save(update_fields=['is_deleted'])
        Session.objects.filter(user=user).delete()

        AuditService.log(deleted_by, 'user.deleted', {'user_id': user.id, 'email': user.email})

        return {'success': True, 'message': 'User deleted successfully'}

import hashlib
import logging
from datetime import timedelta

import jwt
from django.conf import settings
from django.contrib.auth.hashers import make_password, check_password
from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import transaction
from django.utils import timezone

from ..models import User, Session
from .audit_service import AuditService


logger = logging.getLogger(__name__)


class AuthService:
    JWT_SECRET = getattr(settings, 'JWT_SECRET_KEY', settings.SECRET_KEY)
    JWT_ALGORITHM = getattr(settings, 'JWT_ALGORITHM', 'HS256')
    JWT_EXPIRY_DAYS = getattr(settings, 'JWT_EXPIRY_DAYS', 7)

    MIN_PASSWORD_LENGTH = 6

    @classmethod
    @transaction.atomic
    def register(cls, first_name, last_name, email, password, ip_address, user_agent=''):
        """Create the first administrator. Closed once any user exists."""
        if User.objects.exists():
            return {'success': False, 'user': None, 'token': None,
                    'message': 'Registration is closed; ask an administrator for an account'}

        try:
            validate_email(email)
        except ValidationError:
            return {'success': False, 'user': None, 'token': None, 'message': 'Invalid email address'}

        if len(password or '') < cls.MIN_PASSWORD_LENGTH:
            return {'success': False, 'user': None, 'token': None,
                    'message': f'Password must be at least {cls.MIN_PASSWORD_LENGTH} characters'}

        user = User.objects.create(
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            email=email.strip().lower(),
            password=make_password(password),
            role=User.RoleChoices.ADMIN,
            status=User.UserStatus.ACTIVE,
        )

        token = cls._start_session(user, ip_address, user_agent)
        AuditService.log(user, 'user.registered', {'email': user.email})
        logger.info("Administrator %s registered", user.email)

        return {'success': True, 'user': user, 'token': token, 'message': 'User registered successfully'}

    @classmethod
    @transaction.atomic
    def login(cls, email, password, ip_address, user_agent=''):
        try:
            user = User.objects.get(email__iexact=(email or '').strip(), is_deleted=False)
        except User.DoesNotExist:
            return {'success': False, 'token': None, 'user': None, 'message': 'Invalid credentials'}

        if user.status == User.UserStatus.SUSPENDED:
            return {'success': False, 'token': None, 'user': None, 'message': 'Account suspended'}

        if not check_password(password, user.password):
            logger.warning("Failed login for %s from %s", user.email, ip_address)
            return {'success': False, 'token': None, 'user': None, 'message': 'Invalid credentials'}

        Session.objects.filter(user=user).delete()
        token = cls._start_session(user, ip_address, user_agent)

        AuditService.log(user, 'user.login', {'ip_address': ip_address})

        return {'success': True, 'token': token, 'user': user, 'message': 'Login successful'}

    @classmethod
    def logout(cls, token):
        user = cls._verify_token(token)
        if not user:
            return {'success': False, 'message': 'Invalid token'}

        Session.objects.filter(user=user).delete()
        AuditService.log(user, 'user.logout', {})
        return {'success': True, 'message': 'Logged out successfully'}

    @classmethod
    @transaction.atomic
    def refresh_token(cls, old_token, ip_address, user_agent=''):
        user = cls._verify_token(old_token)
        if not user:
            return {'success': False, 'token': None, 'message': 'Invalid token'}

        Session.objects.filter(user=user).delete()
        new_token = cls._start_session(user, ip_address, user_agent)

        return {'success': True, 'token': new_token, 'message': 'Token refreshed'}

    @classmethod
    def get_user_from_token(cls, token):
        return cls._verify_token(token)

    @classmethod
    def _start_session(cls, user, ip_address, user_agent):
        token = cls._generate_token(user)

        Session.objects.create(
            user=user,
            ip_address=ip_address or '',
            user_agent=(user_agent or '')[:200],
            payload=cls._fingerprint(token),
        )

        User.objects.filter(id=user.id).update(
            last_login_at=timezone.now(),
            last_login_ip=ip_address,
        )
        return token

    @classmethod
    def _generate_token(cls, user):
        now = timezone.now()
        payload = {
            'user_id': user.id,
            'email': user.email,
            'role': user.role,
            'exp': now + timedelta(days=cls.JWT_EXPIRY_DAYS),
            'iat': now,
        }
        return jwt.encode(payload, cls.JWT_SECRET, algorithm=cls.JWT_ALGORITHM)

    @staticmethod
    def _fingerprint(token):
        return hashlib.sha256(token.encode()).hexdigest()

    @classmethod
    def _verify_token(cls, token):
        try:
            payload = jwt.decode(token, cls.JWT_SECRET, algorithms=[cls.JWT_ALGORITHM])
        except jwt.InvalidTokenError:
            return None

        try:
            user = User.objects.get(id=payload['user_id'], is_deleted=False)
        except (User.DoesNotExist, KeyError):
            return None

        if user.status != User.UserStatus.ACTIVE:
            return None

        if not Session.objects.filter(user=user, payload=cls._fingerprint(token)).exists():
            return None

        return user

    @classmethod
    def is_admin(cls, user):
        return user.role == User.RoleChoices.ADMIN

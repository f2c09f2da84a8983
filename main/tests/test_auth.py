import json

from django.test import TestCase

from main.models import AuditLog, Session, User
from main.services.auth_service import AuthService
from stock.tests.helpers import PASSWORD, make_user


class AuthApiTests(TestCase):

    def post(self, url, data=None, token=None):
        headers = {"HTTP_AUTHORIZATION": f"Bearer {token}"} if token else {}
        return self.client.post(url, json.dumps(data or {}), content_type="application/json", **headers)

    def register(self, **overrides):
        data = {"first_name": "Grace", "last_name": "Admin", "email": "Grace@Clinic.test", "password": "secret123"}
        data.update(overrides)
        return self.post("/api/auth/register", data)

    def test_first_user_becomes_admin(self):
        response = self.register()

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["data"]["user"]["role"], User.RoleChoices.ADMIN)
        self.assertEqual(body["data"]["user"]["email"], "grace@clinic.test")
        self.assertTrue(AuditLog.objects.filter(action="user.registered").exists())

    def test_registration_closes_after_first_user(self):
        self.register()
        response = self.register(email="second@clinic.test")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(User.objects.count(), 1)

    def test_register_validation(self):
        response = self.post("/api/auth/register", {"email": "grace@clinic.test"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error_code"], "VALIDATION_ERROR")

        response = self.register(password="123")
        self.assertEqual(response.status_code, 400)

    def test_login_and_me(self):
        user = make_user(User.RoleChoices.CASHIER)

        response = self.post("/api/auth/login", {"email": user.email.upper(), "password": PASSWORD})
        self.assertEqual(response.status_code, 200)
        token = response.json()["data"]["token"]

        response = self.client.get("/api/auth/me", HTTP_AUTHORIZATION=f"Bearer {token}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["role"], User.RoleChoices.CASHIER)

    def test_wrong_password(self):
        user = make_user()
        response = self.post("/api/auth/login", {"email": user.email, "password": "nope"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error_code"], "UNAUTHORIZED")

    def test_suspended_user_cannot_login(self):
        user = make_user(status=User.UserStatus.SUSPENDED)
        response = self.post("/api/auth/login", {"email": user.email, "password": PASSWORD})
        self.assertEqual(response.status_code, 401)

    def test_logout_revokes_token(self):
        user = make_user()
        token = AuthService.login(user.email, PASSWORD, "127.0.0.1")["token"]

        response = self.post("/api/auth/logout", token=token)
        self.assertEqual(response.status_code, 200)
        self.assertFalse(Session.objects.filter(user=user).exists())

        response = self.client.get("/api/auth/me", HTTP_AUTHORIZATION=f"Bearer {token}")
        self.assertEqual(response.status_code, 401)

    def test_garbage_token(self):
        response = self.client.get("/api/auth/me", HTTP_AUTHORIZATION="Bearer not-a-jwt")
        self.assertEqual(response.status_code, 401)


class AuthServiceTests(TestCase):

    def test_deleted_user_token_is_rejected(self):
        user = make_user()
        token = AuthService.login(user.email, PASSWORD, "127.0.0.1")["token"]
        self.assertEqual(AuthService.get_user_from_token(token), user)

        User.objects.filter(id=user.id).update(is_deleted=True)

        self.assertIsNone(AuthService.get_user_from_token(token))

    def test_login_records_last_login(self):
        user = make_user()
        AuthService.login(user.email, PASSWORD, "10.0.0.7")
        user.refresh_from_db()
        self.assertEqual(user.last_login_ip, "10.0.0.7")
        self.assertIsNotNone(user.last_login_at)

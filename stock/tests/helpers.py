import json
from decimal import Decimal

from django.contrib.auth.hashers import make_password

from main.models import User
from main.services.auth_service import AuthService
from stock.models import Item, Stock, StockLocation, Vendor


PASSWORD = "secret123"


def make_user(role=User.RoleChoices.PHARMACY, email=None, **extra):
    email = email or f"{role.lower()}@clinic.test"
    return User.objects.create(
        first_name=extra.pop("first_name", role.title()),
        last_name=extra.pop("last_name", "User"),
        email=email,
        password=make_password(PASSWORD),
        role=role,
        **extra
    )


def login(user):
    return AuthService.login(user.email, PASSWORD, "127.0.0.1", "tests")["token"]


def make_item(item_code, generic_name, **fields):
    defaults = {
        "formulation": Item.Formulation.TABLET,
        "category": Item.Category.MEDICINE,
        "unit_of_measure": "tablets",
        "unit_cost": Decimal("0.02"),
        "selling_price": Decimal("0.10"),
    }
    defaults.update(fields)
    return Item.objects.create(item_code=item_code, generic_name=generic_name, **defaults)


def make_stock(item, quantity, location=StockLocation.BULK_STORE, batch_id="B1", expiry_date=None):
    return Stock.objects.create(
        item=item,
        batch_id=batch_id,
        location=location,
        current_stock_quantity=quantity,
        expiry_date=expiry_date,
    )


def make_vendor(code, name, supplies=()):
    vendor = Vendor.objects.create(code=code, name=name)
    vendor.supplies.set(supplies)
    return vendor


class ApiClientMixin:
    """JSON helpers around the Django test client with a bearer token."""

    token = None

    def auth_headers(self):
        return {"HTTP_AUTHORIZATION": f"Bearer {self.token}"} if self.token else {}

    def get_json(self, url, **params):
        return self.client.get(url, params, **self.auth_headers())

    def post_json(self, url, data=None):
        return self.client.post(url, json.dumps(data or {}), content_type="application/json",
                                **self.auth_headers())

    def put_json(self, url, data=None):
        return self.client.put(url, json.dumps(data or {}), content_type="application/json",
                               **self.auth_headers())

    def delete_json(self, url, data=None):
        return self.client.delete(url, json.dumps(data or {}), content_type="application/json",
                                  **self.auth_headers())

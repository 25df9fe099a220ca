from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from langchain_core.language_models import FakeListChatModel
from mongomock_motor import AsyncMongoMockClient

import storefront.database as database
from storefront.mailer import Mailer, get_mailer
from storefront.main import app
from storefront.notifications import PushNotifier, SendReport, get_notifier
from storefront.seo import SeoGenerator, get_seo_generator
from storefront.storage import ObjectStorage, get_storage


class RecordingNotifier(PushNotifier):
    """Enabled notifier that records pushes instead of calling FCM.

    Tokens starting with ``dead`` are reported back as invalid.
    """

    def __init__(self):
        super().__init__(credentials_path="test-credentials.json")
        self.sent = []

    async def push(self, tokens, message):
        self.sent.append((list(tokens), message))
        dead = [t for t in tokens if t.startswith("dead")]
        return SendReport(success=len(tokens) - len(dead), failure=len(dead), invalid_tokens=dead)

    def titles(self):
        return [m.title for _, m in self.sent]


class RecordingMailer(Mailer):
    def __init__(self, succeed=True):
        super().__init__(api_key="test-key", sender="Store <store@example.com>")
        self.outbox = []
        self.succeed = succeed

    def _send(self, payload):
        self.outbox.append(payload)
        return self.succeed


class FakeStorage(ObjectStorage):
    def __init__(self):
        super().__init__(bucket="test-bucket", client=object())
        self.uploaded = {}
        self.deleted = []

    async def upload_image(self, data, filename, content_type, folder):
        if not (content_type or "").startswith("image/"):
            return await super().upload_image(data, filename, content_type, folder)
        key = self.make_key(folder, filename)
        self.uploaded[key] = data
        return key

    async def delete(self, key):
        if key:
            self.deleted.append(key)

    async def presign(self, key):
        if not key:
            return None
        return f"https://cdn.test/{key}?signed=1"


@pytest.fixture
def db():
    database._db = AsyncMongoMockClient()["storefront_test"]
    yield database._db
    database._db = None


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def client(db, notifier, mailer, storage):
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_seo_generator] = lambda: SeoGenerator(llm=FakeListChatModel(responses=["no answer"]))
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def user(client):
    resp = client.post("/api/users", json={"name": "Asha Rao", "email": "asha@example.com", "password": "secret123"})
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


@pytest.fixture
def admin(client, db):
    resp = client.post("/api/admins", json={"name": "Store Admin", "email": "admin@example.com"})
    data = resp.json()["data"]
    client.post("/api/auth/fcm-token", json={"user_id": data["id"], "fcm_token": "admin-device", "user_type": "admin"})
    return data


@pytest.fixture
def address(client, user):
    resp = client.post(
        f"/api/online/addresses?user_id={user['id']}",
        json={
            "name": "Asha Rao",
            "phone": "9876543210",
            "address_line1": "12 MG Road",
            "city": "Bengaluru",
            "state": "Karnataka",
            "pincode": "560001",
        },
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


def product_payload(**overrides):
    payload = {
        "category": "Seafood",
        "sub_category": "Fish",
        "brand": "Ocean Fresh",
        "short_description": "Fresh Seer Fish",
        "product_status": "active",
        "variants": [
            {"name": "500g", "sku": "SEER-500", "mrp": 600, "selling_price": 500, "stock_quantity": 20,
             "low_stock_alert": 5, "images": ["products/seer-500.jpg"]},
            {"name": "1kg", "sku": "SEER-1000", "mrp": 1100, "selling_price": 950, "stock_quantity": 3,
             "low_stock_alert": 2},
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def product(client):
    resp = client.post("/api/online/online-products", json=product_payload())
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


def coupon_payload(**overrides):
    now = datetime.utcnow()
    payload = {
        "code": "save10",
        "description": "10% off",
        "discount_type": "percentage",
        "discount_value": 10,
        "valid_from": (now - timedelta(days=1)).isoformat(),
        "valid_until": (now + timedelta(days=30)).isoformat(),
    }
    payload.update(overrides)
    return payload

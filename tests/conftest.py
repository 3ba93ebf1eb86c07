import mongomock
import pytest
from fastapi.testclient import TestClient

import main
from config import Settings
from notifications import Notifier

PASSWORD = "secret123"


class RecordingNotifier(Notifier):
    def __init__(self):
        self.sent = []

    def send(self, to, subject, html):
        self.sent.append({"to": to, "subject": subject, "html": html})


@pytest.fixture
def settings():
    return Settings(
        jwt_secret="test-secret",
        bcrypt_rounds=4,
        rate_limit_max=10_000,
        auth_rate_limit_max=10_000,
    )


@pytest.fixture
def db():
    return mongomock.MongoClient().pawmart_test


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(settings, db, notifier):
    main.configure(main.app, settings, db=db, notifier=notifier)
    yield TestClient(main.app)
    main.app.state.settings = None
    main.app.state.db = None


def auth(token):
    return {"Authorization": f"Bearer {token}"}


def register(client, email, role="buyer", name="Test User", password=PASSWORD):
    res = client.post("/auth/register", json={"name": name, "email": email, "password": password, "role": role})
    assert res.status_code == 201, res.text
    return res.json()["token"]


def listing_payload(**overrides):
    payload = {
        "name": "Golden Retriever Puppy",
        "category": "Pets",
        "price": 800,
        "location": "New York, NY",
        "description": "Healthy, vaccinated puppy ready for a new home.",
        "image": "https://images.example.org/puppy.jpg",
        "breed": "Golden Retriever",
        "gender": "Male",
        "vaccinated": True,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def seller_token(client):
    return register(client, "seller@pawmart.io", role="seller", name="Sam Seller")


@pytest.fixture
def buyer_token(client):
    return register(client, "buyer@pawmart.io", name="Bea Buyer")


@pytest.fixture
def admin_token(client, db):
    token = register(client, "admin@pawmart.io", name="Ada Admin")
    db.user.update_one({"email": "admin@pawmart.io"}, {"$set": {"role": "admin"}})
    return token


@pytest.fixture
def create_listing(client, seller_token):
    def _create(token=None, **overrides):
        res = client.post("/listings", json=listing_payload(**overrides), headers=auth(token or seller_token))
        assert res.status_code == 201, res.text
        return res.json()

    return _create

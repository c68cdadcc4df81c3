import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import otp
from main import app
from tokens import create_token


@pytest.fixture
def db():
    mem = mongomock.MongoClient()["laundry_test"]
    database.init_db(mem)
    yield mem
    database.db = None


@pytest.fixture
def client(db):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def sent_codes(monkeypatch):
    """Capture OTP e-mails instead of talking to SMTP."""
    sent = {}
    monkeypatch.setattr(otp, "send_otp_email", lambda to, code: sent.__setitem__(to, code))
    return sent


@pytest.fixture
def make_user(db):
    def _make(balance=0.0, **extra):
        doc = {
            "email": extra.pop("email", "somchai@example.com"),
            "username": extra.pop("username", "somchai"),
            "display_name": "Somchai",
            "address": "456 Phahonyothin Rd",
            "balance": balance,
            "role": "user",
            "is_onboarded": True,
        }
        doc.update(extra)
        uid = database.create_document("user", doc)
        return uid, {"Authorization": f"Bearer {create_token({'user_id': uid})}"}
    return _make


@pytest.fixture
def make_shop(db):
    def _make(type="coin", delivery_fee=10, balance=0.0, name=None):
        return database.create_document("shop", {
            "name": name or f"{type} laundry",
            "rating": 4.5,
            "review_count": 10,
            "price_level": 2,
            "type": type,
            "delivery_fee": delivery_fee,
            "delivery_time": 30,
            "balance": balance,
        })
    return _make

"""Shared fixtures: app on in-memory SQLite, frozen clock, email outbox, users."""
import re
from datetime import timedelta

import pytest

from app import create_app
from config import TestConfig
from models import db
from models.user import User
from security.password_history import replace_password
from utils import clock, emailer
from utils.auth_context import AuthContext

PASSWORD = "Blue#Harbor42"
NEW_PASSWORD = "Green$Valley77"
OTHER_PASSWORD = "Quiet!Forest19"
WRONG_PASSWORD = "Wrong#Guess00"


class FrozenClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **delta):
        self.now += timedelta(**delta)
        return self.now


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def frozen_clock(monkeypatch):
    frozen = FrozenClock(clock.utcnow())
    monkeypatch.setattr(clock, "utcnow", frozen)
    return frozen


class Outbox(list):
    def last_code(self, to=None):
        for message in reversed(self):
            if to is None or message["to"] == to:
                return re.search(r"\b(\d{6})\b", message["body"]).group(1)
        raise AssertionError("no email sent")


@pytest.fixture
def outbox(monkeypatch):
    sent = Outbox()

    def fake_send(to_email, subject, body, html=None):
        sent.append({"to": to_email, "subject": subject, "body": body, "html": html})
        return True, None

    monkeypatch.setattr(emailer, "send_email", fake_send)
    return sent


@pytest.fixture
def ctx():
    return AuthContext(ip="127.0.0.1", user_agent="pytest", correlation_id="test-request")


@pytest.fixture
def make_user(app):
    def _make(email="user@x.com", password=PASSWORD, role="student", full_name="Jamie Rivera",
              verified=True, **fields):
        user = User(email=email, full_name=full_name, role=role, email_verified=verified, **fields)
        replace_password(user, password, clock.utcnow())
        db.session.add(user)
        db.session.commit()
        return user
    return _make

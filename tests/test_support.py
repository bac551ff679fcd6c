"""
Tests for logging, email delivery, templates and the CLI commands.
"""
import json
import logging
import smtplib

from models.user import User
from security.bruteforce import check_lock, record_failure
from utils import emailer, email_templates
from utils.auth_context import assign_request_id
from utils.structured_logging import StructuredFormatter


def _record(msg="hello %s", args=("world",), level=logging.INFO):
    return logging.LogRecord("jobiyo", level, __file__, 1, msg, args, None)


class TestStructuredFormatter:

    def test_json_outside_request(self):
        line = StructuredFormatter(as_json=True).format(_record())
        payload = json.loads(line)
        assert payload["msg"] == "hello world"
        assert payload["level"] == "INFO"
        assert "request_id" not in payload

    def test_json_inside_request(self, app):
        with app.test_request_context("/auth/login", method="POST", headers={"X-Request-ID": "abc"}):
            assign_request_id()
            payload = json.loads(StructuredFormatter(as_json=True).format(_record()))
        assert payload["request_id"] == "abc"
        assert payload["route"] == "/auth/login"
        assert payload["method"] == "POST"

    def test_plain(self):
        line = StructuredFormatter(as_json=False).format(_record(level=logging.WARNING))
        assert line == "[WARNING] hello world"


class FakeSMTP:
    sent = []

    def __init__(self, host, port, timeout=None):
        self.host = host

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, username, password):
        pass

    def send_message(self, msg):
        FakeSMTP.sent.append(msg)


class TestEmailer:

    def test_not_configured(self, app):
        app.config["SMTP_HOST"] = None
        assert emailer.send_email("a@x.com", "s", "b") == (False, "Email not configured")

    def test_sends_multipart(self, app, monkeypatch):
        FakeSMTP.sent = []
        monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
        sent, error = emailer.send_email("a@x.com", "Subject", "plain body", html="<p>html</p>")
        assert sent and error is None
        msg = FakeSMTP.sent[0]
        assert msg["To"] == "a@x.com"
        assert msg["From"] == "no-reply@jobiyo.test"
        assert msg.is_multipart()

    def test_smtp_failure_is_reported(self, app, monkeypatch):
        def refuse(*args, **kwargs):
            raise ConnectionRefusedError("refused")

        monkeypatch.setattr(smtplib, "SMTP", refuse)
        sent, error = emailer.send_email("a@x.com", "s", "b")
        assert not sent
        assert "refused" in error


class TestTemplates:

    def test_reset_email_has_code_and_link(self, app):
        subject, body, html = email_templates.password_reset_email("a@x.com", "123456", 10)
        assert "password recovery" in subject
        assert "123456" in body and "123456" in html
        assert "forgot-password?email=a@x.com" in body
        assert "10 minutes" in body

    def test_login_code_email(self):
        subject, body, _ = email_templates.login_code_email("654321", 5)
        assert "654321" in body
        assert "5 minutes" in body


class TestCli:

    def test_make_admin(self, app, make_user):
        make_user()
        result = app.test_cli_runner().invoke(args=["make-admin", "USER@x.com"])
        assert "user@x.com promoted to admin" in result.output
        assert User.query.filter_by(email="user@x.com").populate_existing().one().role == "admin"

    def test_make_admin_unknown_user(self, app):
        result = app.test_cli_runner().invoke(args=["make-admin", "ghost@x.com"])
        assert "User not found" in result.output

    def test_unlock(self, app, make_user):
        make_user()
        for _ in range(5):
            record_failure("user@x.com")
        result = app.test_cli_runner().invoke(args=["unlock", "user@x.com"])
        assert "unlocked" in result.output
        assert not check_lock("user@x.com").locked

    def test_sweep_auth(self, app):
        result = app.test_cli_runner().invoke(args=["sweep-auth"])
        assert result.exit_code == 0
        assert "tokens=0 attempts=0 codes=0 windows=0" in result.output

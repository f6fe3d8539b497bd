from __future__ import annotations

import smtplib

import pytest

from authcore.infra.mail.smtp_mailer import SMTPMailer
from authcore.infra.security.werkzeug_password_hasher import WerkzeugPasswordHasher


class TestWerkzeugPasswordHasher:
    @pytest.fixture()
    def hasher(self) -> WerkzeugPasswordHasher:
        # pbkdf2 keeps the suite fast
        return WerkzeugPasswordHasher(method="pbkdf2:sha256:1000")

    def test_hash_and_verify(self, hasher):
        hashed = hasher.hash("s3cret-pass")

        assert hashed != "s3cret-pass"
        assert hasher.verify("s3cret-pass", hashed) is True
        assert hasher.verify("wrong", hashed) is False

    @pytest.mark.parametrize("stored", ["", "not-a-hash", "bogus$salt$value"])
    def test_verify_never_raises_on_bad_hashes(self, hasher, stored):
        assert hasher.verify("anything", stored) is False


class _FakeSMTP:
    """Records the calls an SMTP session would receive."""

    instances: list[_FakeSMTP] = []
    fail_with: Exception | None = None

    def __init__(self, host, port, timeout=None, **_kw):
        self.host = host
        self.port = port
        self.calls: list[str] = []
        self.sent: list[tuple[str, str, str]] = []
        _FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self, context=None):
        self.calls.append("starttls")

    def login(self, user, password):
        self.calls.append(f"login:{user}")
        if _FakeSMTP.fail_with is not None:
            raise _FakeSMTP.fail_with

    def sendmail(self, sender, to, body):
        self.sent.append((sender, to, body))


@pytest.fixture()
def fake_smtp(monkeypatch):
    _FakeSMTP.instances = []
    _FakeSMTP.fail_with = None
    monkeypatch.setattr(smtplib, "SMTP", _FakeSMTP)
    monkeypatch.setattr(smtplib, "SMTP_SSL", _FakeSMTP)
    return _FakeSMTP


class TestSMTPMailer:
    def _send(self, mailer: SMTPMailer) -> bool:
        return mailer.send_verification_email(
            to="dest@example.com",
            token="tok-123",
            url="https://app.example.com/verify-email",
            name="Dest",
            expiry_hours=24,
        )

    def test_dev_mode_without_host_reports_success(self, fake_smtp):
        assert self._send(SMTPMailer()) is True
        assert fake_smtp.instances == []

    def test_sends_over_starttls(self, fake_smtp):
        mailer = SMTPMailer(
            host="smtp.example.com", user="mailer", password="pw", from_email="no-reply@example.com"
        )

        assert self._send(mailer) is True

        conn = fake_smtp.instances[0]
        assert conn.calls == ["starttls", "login:mailer"]
        sender, to, body = conn.sent[0]
        assert sender == "no-reply@example.com"
        assert to == "dest@example.com"
        assert "https://app.example.com/verify-email?token=tok-123" in body

    def test_implicit_tls_skips_starttls(self, fake_smtp):
        mailer = SMTPMailer(host="smtp.example.com", port=465, use_tls=False, from_email="a@b.co")

        assert self._send(mailer) is True
        assert "starttls" not in fake_smtp.instances[0].calls

    @pytest.mark.parametrize(
        "error",
        [
            smtplib.SMTPAuthenticationError(535, b"bad credentials"),
            smtplib.SMTPException("boom"),
            OSError("network unreachable"),
        ],
    )
    def test_smtp_failures_return_false(self, fake_smtp, error):
        fake_smtp.fail_with = error
        mailer = SMTPMailer(host="smtp.example.com", user="u", password="p")

        assert self._send(mailer) is False

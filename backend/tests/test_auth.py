from datetime import datetime, timedelta, timezone

from crm_billing.core import auth
from crm_billing.core.auth import create_session, verify_session


def test_round_trip():
    token = create_session(7, "manager", email="m@example.com")
    data = verify_session(token)
    assert data["user_id"] == 7
    assert data["role"] == "manager"


def test_tampered_token_rejected():
    token = create_session(7, "user")
    payload, signature = token.rsplit(".", 1)
    forged = create_session(8, "admin").rsplit(".", 1)[0]
    assert verify_session(f"{forged}.{signature}") is None
    assert verify_session(f"{payload}.{'0' * len(signature)}") is None
    assert verify_session("garbage") is None
    assert verify_session(None) is None


def test_expired_token_rejected(monkeypatch):
    token = create_session(7, "admin")
    later = datetime.now(timezone.utc) + timedelta(hours=auth.SESSION_TTL_HOURS + 1)

    class _Clock(datetime):
        @classmethod
        def now(cls, tz=None):
            return later

    monkeypatch.setattr(auth, "datetime", _Clock)
    assert verify_session(token) is None


def test_non_ascii_signature_rejected():
    payload = create_session(7, "admin").rsplit(".", 1)[0]
    assert verify_session(f"{payload}.{'é' * 64}") is None

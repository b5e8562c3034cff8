from urllib.error import URLError

import pytest
from itsdangerous import TimestampSigner

import auth
from auth import (
    GoogleIdentityVerifier,
    IdentityError,
    issue_session_token,
    read_session_token,
)


def test_session_token_round_trip() -> None:
    token = issue_session_token(42)

    assert read_session_token(token) == 42


def test_tampered_session_token_is_rejected() -> None:
    token = issue_session_token(42)

    with pytest.raises(IdentityError):
        read_session_token(token + "tampered")


def test_expired_session_token_is_rejected(monkeypatch) -> None:
    monkeypatch.setattr(TimestampSigner, "get_timestamp", lambda self: 0)
    token = issue_session_token(42)
    monkeypatch.undo()

    with pytest.raises(IdentityError, match="expired"):
        read_session_token(token)


def test_verifier_checks_audience(monkeypatch) -> None:
    verifier = GoogleIdentityVerifier(client_id="client-123", timeout=1)
    monkeypatch.setattr(
        verifier, "_fetch", lambda token: {"sub": "abc", "aud": "someone-else"}
    )

    with pytest.raises(IdentityError):
        verifier.verify("token")


def test_verifier_builds_identity(monkeypatch) -> None:
    verifier = GoogleIdentityVerifier(client_id="client-123", timeout=1)
    monkeypatch.setattr(
        verifier,
        "_fetch",
        lambda token: {"sub": "abc", "aud": "client-123", "email": "asha@example.com"},
    )

    identity = verifier.verify("token")

    assert identity.subject == "abc"
    assert identity.name == "asha"


def test_verifier_wraps_network_errors(monkeypatch) -> None:
    def fail(*args, **kwargs):
        raise URLError("offline")

    monkeypatch.setattr(auth, "urlopen", fail)
    verifier = GoogleIdentityVerifier(client_id="client-123", timeout=1)

    with pytest.raises(IdentityError):
        verifier.verify("token")
    with pytest.raises(IdentityError):
        verifier.verify("")

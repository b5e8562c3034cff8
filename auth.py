from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.error import URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import get_settings

logger = logging.getLogger(__name__)

TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"


class IdentityError(ValueError):
    pass


@dataclass(frozen=True)
class ExternalIdentity:
    subject: str
    email: Optional[str]
    name: str


class GoogleIdentityVerifier:
    def __init__(
        self, client_id: Optional[str] = None, timeout: Optional[float] = None
    ) -> None:
        settings = get_settings()
        self.client_id = client_id if client_id is not None else settings.google_client_id
        self.timeout = timeout if timeout is not None else settings.identity_timeout_secs

    def _fetch(self, id_token: str) -> dict:
        url = f"{TOKENINFO_URL}?{urlencode({'id_token': id_token})}"
        req = Request(url, headers={"Accept": "application/json"})
        try:
            with urlopen(req, timeout=self.timeout) as resp:
                return json.loads(resp.read().decode("utf-8"))
        except (URLError, TimeoutError, json.JSONDecodeError) as exc:
            raise IdentityError("Invalid Google token") from exc

    def verify(self, id_token: str) -> ExternalIdentity:
        if not id_token:
            raise IdentityError("idToken is required")
        payload = self._fetch(id_token)
        if not isinstance(payload, dict) or not payload.get("sub"):
            raise IdentityError("Invalid Google token")
        if self.client_id and payload.get("aud") != self.client_id:
            logger.warning(f"identity_audience_mismatch: aud={payload.get('aud')}")
            raise IdentityError("Invalid Google token")
        email = payload.get("email") or None
        name = payload.get("name") or (email.split("@")[0] if email else "User")
        return ExternalIdentity(subject=str(payload["sub"]), email=email, name=name)


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.session_secret, salt="ledger-session")


def issue_session_token(user_id: int) -> str:
    return _serializer().dumps({"u": user_id})


def read_session_token(token: str) -> int:
    max_age = get_settings().session_max_age_days * 24 * 3600
    try:
        data = _serializer().loads(token, max_age=max_age)
    except SignatureExpired as exc:
        raise IdentityError("Session expired") from exc
    except BadSignature as exc:
        raise IdentityError("Invalid session token") from exc
    user_id = data.get("u") if isinstance(data, dict) else None
    if not isinstance(user_id, int):
        raise IdentityError("Invalid session token")
    return user_id

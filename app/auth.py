"""Access checks for the TVBox subscribe token and site session cookies."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import secrets
from dataclasses import dataclass
from urllib.parse import unquote

from .config import Settings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SessionInfo:
    """Identity decoded from the site's login cookie."""

    username: str
    role: str | None = None


def sign_username(secret: str, username: str) -> str:
    """Return the hex HMAC-SHA256 signature expected in session cookies."""

    return hmac.new(
        secret.encode("utf-8"), username.encode("utf-8"), hashlib.sha256
    ).hexdigest()


def encode_session_cookie(username: str, secret: str | None = None) -> str:
    """Return a cookie value accepted by :meth:`AccessGuard.session_user`."""

    payload: dict[str, str] = {"username": username}
    if secret:
        payload["signature"] = sign_username(secret, username)
    return json.dumps(payload, separators=(",", ":"))


class AccessGuard:
    """Decide whether a request may read the catalog or a stream."""

    def __init__(self, settings: Settings):
        self._secret = settings.tvbox_subscribe_token
        self._cookie_secret = settings.auth_cookie_secret
        self.cookie_name = settings.auth_cookie_name

    def token_matches(self, token: str | None) -> bool:
        """Return whether ``token`` equals the configured subscribe token."""

        if not self._secret or token is None:
            return False
        return secrets.compare_digest(token.encode("utf-8"), self._secret.encode("utf-8"))

    def session_user(self, cookie_value: str | None) -> SessionInfo | None:
        """Decode the login cookie, returning ``None`` when it is not valid."""

        if not cookie_value:
            return None
        try:
            payload = json.loads(unquote(cookie_value))
        except ValueError:
            logger.debug("Ignoring undecodable session cookie")
            return None
        if not isinstance(payload, dict):
            return None

        username = payload.get("username")
        if not isinstance(username, str) or not username:
            return None

        if self._cookie_secret:
            signature = payload.get("signature")
            if not isinstance(signature, str):
                return None
            expected = sign_username(self._cookie_secret, username)
            if not hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8")):
                logger.info("Rejected session cookie with a bad signature for %s", username)
                return None

        role = payload.get("role")
        return SessionInfo(username=username, role=role if isinstance(role, str) else None)

    def authorize(self, request_token: str | None, cookie_value: str | None = None) -> bool:
        """Accept either the subscribe token or a valid session cookie."""

        if self.token_matches(request_token):
            return True
        return self.session_user(cookie_value) is not None

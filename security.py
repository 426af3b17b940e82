import logging
import secrets
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import requests
from jose import JWTError, jwt
from passlib.context import CryptContext

from config import Settings

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

GOOGLE_CERTS_URL = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")


class GoogleAuthError(Exception):
    """The Google identity token could not be trusted."""


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


_dummy_hash: Optional[str] = None


def _get_dummy_hash() -> str:
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = pwd_context.hash(secrets.token_hex(16))
    return _dummy_hash


def verify_password(password: str, hashed: Optional[str]) -> bool:
    if not hashed:
        # same bcrypt cost as a real check, so missing accounts are not faster
        pwd_context.verify(password, _get_dummy_hash())
        return False
    return pwd_context.verify(password, hashed)


def create_access_token(settings: Settings, data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.jwt_expires_min))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_alg)


def decode_access_token(settings: Settings, token: str) -> dict:
    """Raises JWTError on a bad signature or an expired token."""
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_alg])


def generate_reset_token() -> str:
    return secrets.token_hex(32)


def _fetch_google_certs(timeout: float = 10.0) -> Dict[str, Any]:
    resp = requests.get(GOOGLE_CERTS_URL, timeout=timeout)
    resp.raise_for_status()
    return resp.json()


class GoogleVerifier:
    """
    Verifies Google-issued ID tokens: RS256 signature against Google's JWKS,
    audience, issuer and expiry. Certificates are cached for `cache_ttl` seconds.
    """

    def __init__(
        self,
        client_id: Optional[str],
        fetch_certs: Callable[[], Dict[str, Any]] = _fetch_google_certs,
        cache_ttl: int = 3600,
    ):
        self.client_id = client_id
        self._fetch_certs = fetch_certs
        self._cache_ttl = cache_ttl
        self._certs: Optional[Dict[str, Any]] = None
        self._fetched_at = 0.0
        self._lock = threading.Lock()

    def _get_certs(self) -> Dict[str, Any]:
        with self._lock:
            if self._certs is None or time.monotonic() - self._fetched_at > self._cache_ttl:
                try:
                    self._certs = self._fetch_certs()
                except requests.RequestException as e:
                    logger.warning("Fetching Google certificates failed: %s", e)
                    raise GoogleAuthError("Google certificates unavailable")
                self._fetched_at = time.monotonic()
            return self._certs

    def verify(self, id_token: str) -> Dict[str, Any]:
        if not self.client_id:
            raise GoogleAuthError("Google sign-in is not configured")
        if not id_token:
            raise GoogleAuthError("Missing Google token")
        try:
            claims = jwt.decode(
                id_token,
                self._get_certs(),
                algorithms=["RS256"],
                audience=self.client_id,
                issuer=GOOGLE_ISSUERS,
                options={"verify_at_hash": False},
            )
        except JWTError as e:
            raise GoogleAuthError(str(e))
        if not claims.get("email") or not claims.get("sub"):
            raise GoogleAuthError("Google token missing email or subject")
        if claims.get("email_verified") is False:
            raise GoogleAuthError("Google email is not verified")
        return claims

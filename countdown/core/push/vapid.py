"""VAPID (RFC 8292) key handling and per-request authorization signing."""

from __future__ import annotations

import base64
import binascii
import logging
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlparse

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from countdown.configs import configs
from countdown.core.clock import SystemTimeSource, TimeSource
from countdown.core.exceptions import InvalidSigningKeyError

logger = logging.getLogger(__name__)

MAX_TOKEN_TTL = timedelta(hours=24)


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(data: str) -> bytes:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def push_service_origin(endpoint: str) -> str:
    """Return ``https://host`` of a push endpoint (the JWT audience)."""
    parsed = urlparse(endpoint)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"Not an absolute URL: {endpoint[:60]}")
    return f"{parsed.scheme}://{parsed.netloc}"


def load_private_key(material: str | bytes | ec.EllipticCurvePrivateKey | None) -> ec.EllipticCurvePrivateKey:
    """Load a P-256 private key from raw base64url, PEM or DER.

    Raises:
        InvalidSigningKeyError: Missing, undecodable or non-P-256 material.
    """
    if isinstance(material, ec.EllipticCurvePrivateKey):
        key: Any = material
    else:
        if not material:
            raise InvalidSigningKeyError("VAPID private key is not configured")
        try:
            if isinstance(material, bytes):
                material = material.decode("ascii")
            text = material.strip()
            if text.startswith("-----BEGIN"):
                key = serialization.load_pem_private_key(text.encode("ascii"), password=None)
            else:
                raw = b64url_decode(text)
                if len(raw) == 32:
                    key = ec.derive_private_key(int.from_bytes(raw, "big"), ec.SECP256R1())
                else:
                    key = serialization.load_der_private_key(raw, password=None)
        except (ValueError, TypeError, UnicodeError, binascii.Error) as e:
            raise InvalidSigningKeyError("VAPID private key is malformed", cause=e) from e

    if not isinstance(key, ec.EllipticCurvePrivateKey) or not isinstance(key.curve, ec.SECP256R1):
        raise InvalidSigningKeyError("VAPID private key must be an EC P-256 key")
    return key


def encode_public_key(key: ec.EllipticCurvePublicKey) -> str:
    raw = key.public_bytes(serialization.Encoding.X962, serialization.PublicFormat.UncompressedPoint)
    return b64url_encode(raw)


class VapidSigner:
    """Signs short-lived ES256 tokens scoped to one push-service origin.

    The key pair is validated once at construction; a signer that exists
    can always sign.
    """

    def __init__(
        self,
        private_key: str | bytes | ec.EllipticCurvePrivateKey | None,
        public_key: str | None = None,
        subject: str = "",
        ttl: timedelta = timedelta(hours=12),
        time_source: TimeSource | None = None,
    ) -> None:
        self._private_key = load_private_key(private_key)
        self.public_key = encode_public_key(self._private_key.public_key())
        if public_key and public_key.strip() != self.public_key:
            raise InvalidSigningKeyError("VAPID public key does not match the private key")
        if not subject.strip():
            raise InvalidSigningKeyError("VAPID subject (contact) is required")
        self.subject = self._normalize_subject(subject)
        self.ttl = ttl
        self._time = time_source or SystemTimeSource()

    @staticmethod
    def _normalize_subject(subject: str) -> str:
        subject = subject.strip()
        if not subject:
            raise ValueError("VAPID subject (contact) is required")
        if subject.startswith(("mailto:", "https:")):
            return subject
        return f"mailto:{subject}"

    def claims(self, endpoint: str, subject: str | None = None, ttl: timedelta | None = None) -> dict[str, Any]:
        lifetime = ttl if ttl is not None else self.ttl
        if lifetime <= timedelta(0):
            raise ValueError("VAPID token ttl must be positive")
        lifetime = min(lifetime, MAX_TOKEN_TTL)
        expires = self._time.now() + lifetime
        return {
            "aud": push_service_origin(endpoint),
            "exp": int(expires.timestamp()),
            "sub": self._normalize_subject(subject or self.subject),
        }

    def token(self, endpoint: str, subject: str | None = None, ttl: timedelta | None = None) -> str:
        return jwt.encode(
            self.claims(endpoint, subject, ttl),
            self._private_key,
            algorithm="ES256",
            headers={"typ": "JWT"},
        )

    def sign(self, endpoint: str, subject: str | None = None, ttl: timedelta | None = None) -> str:
        """Return the ``Authorization`` header value for a request to *endpoint*."""
        return f"vapid t={self.token(endpoint, subject, ttl)}, k={self.public_key}"


def generate_vapid_keys() -> tuple[str, str]:
    """Return a fresh ``(private, public)`` pair in the config encoding."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    raw_private = private_key.private_numbers().private_value.to_bytes(32, "big")
    return b64url_encode(raw_private), encode_public_key(private_key.public_key())


# ---------------------------------------------------------------------------
# Process-wide signer
# ---------------------------------------------------------------------------

_signer: VapidSigner | None = None


def build_signer_from_config() -> VapidSigner:
    push = configs.Push
    return VapidSigner(
        private_key=push.VapidPrivateKey,
        public_key=push.VapidPublicKey or None,
        subject=push.VapidContactEmail,
        ttl=timedelta(seconds=push.VapidTokenTTLSeconds),
    )


def ensure_vapid_keys() -> VapidSigner:
    """Validate the configured VAPID pair once and cache the signer.

    Called at startup; raises :class:`InvalidSigningKeyError` so a bad key
    stops the process instead of failing every delivery.
    """
    global _signer
    if _signer is None:
        _signer = build_signer_from_config()
        logger.info("VAPID keys ready (public=%s…)", _signer.public_key[:20])
    return _signer


def get_signer() -> VapidSigner:
    return ensure_vapid_keys()


if __name__ == "__main__":
    private, public = generate_vapid_keys()
    print(f"COUNTDOWN_Push_VapidPrivateKey={private}")
    print(f"COUNTDOWN_Push_VapidPublicKey={public}")
    print(f"# issued {datetime.now(timezone.utc).isoformat()}")

"""TOTP two-factor verification (RFC 6238, 30-second steps, 6 digits)."""

import re
from datetime import datetime

import pyotp

from authcore.config.settings import settings
from authcore.shared import clock

CODE_PATTERN = re.compile(r"[0-9]{6}")


def generate_secret() -> str:
    """Generate a random base32 TOTP secret."""
    return pyotp.random_base32()


def provisioning_uri(secret: str, account_email: str) -> str:
    """otpauth:// URI for authenticator apps (rendered as a QR code by the client)."""
    return pyotp.TOTP(secret).provisioning_uri(name=account_email, issuer_name=settings.totp_issuer)


def current_code(secret: str, for_time: datetime | None = None) -> str:
    """Code for the given instant, defaulting to now."""
    return pyotp.TOTP(secret).at(for_time or clock.utc_now())


def is_valid(secret: str | None, code: str | None, for_time: datetime | None = None) -> bool:
    """Check a code against the secret, tolerating ``totp_valid_window`` steps of clock skew.

    Codes that are not exactly six ASCII digits are rejected before any HMAC
    is computed.
    """
    if not secret or code is None or not CODE_PATTERN.fullmatch(code):
        return False
    return pyotp.TOTP(secret).verify(
        code,
        for_time=for_time or clock.utc_now(),
        valid_window=settings.totp_valid_window,
    )

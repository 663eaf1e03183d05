"""JWT utilities for authentication.

Every token is parsed through ``decode_token``; the projections below it never
read claims from an unverified token.
"""

import hashlib
import json
import uuid
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

import jwt
from jwt import exceptions as jwt_errors
from jwt.utils import base64url_decode, base64url_encode

from authcore.config.settings import settings
from authcore.shared import clock

REQUIRED_CLAIMS = ["sub", "type", "iat", "exp"]


class TokenType(StrEnum):
    """Value of the ``type`` claim."""

    ACCESS = "access"
    REFRESH = "refresh"
    PASSWORD_RESET = "password_reset"
    EMAIL_VERIFICATION = "email_verification"


class TokenError(Exception):
    """Base class for token verification failures."""


class InvalidSignatureError(TokenError):
    """Signature does not match any accepted key."""


class MalformedTokenError(TokenError):
    """Token is not a well-formed compact JWT."""


class ExpiredTokenError(TokenError):
    """Token signature is valid but its exp claim has passed."""


class UnsupportedTokenError(TokenError):
    """Token is well-formed and signed but not one this service issues."""


class TokenTypeMismatchError(UnsupportedTokenError):
    """Token is valid but of another type than the caller expected."""


def _encode(claims: dict[str, Any]) -> str:
    return jwt.encode(dict(claims), settings.secret_key, algorithm=settings.jwt_algorithm)


def _base_claims(subject: str, token_type: TokenType, expires_delta: timedelta) -> dict[str, Any]:
    # Whole seconds, matching what ends up in the encoded NumericDate claims
    now = clock.utc_now().replace(microsecond=0)
    return {
        "sub": subject,
        "type": token_type.value,
        "iat": now,
        "exp": now + expires_delta,
    }


def create_access_token(account_id: int, email: str, expires_delta: timedelta | None = None) -> str:
    """Create a short-lived access token.

    Args:
        account_id: Subject of the token
        email: Account email, carried as a claim
        expires_delta: Optional lifetime override

    Returns:
        Encoded JWT token string

    """
    claims = _base_claims(
        str(account_id),
        TokenType.ACCESS,
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes),
    )
    claims["email"] = email
    claims["jti"] = uuid.uuid4().hex
    return _encode(claims)


def mint_refresh_token(account_id: int, expires_delta: timedelta | None = None) -> tuple[str, dict[str, Any]]:
    """Create a refresh token and return it with the claims it carries.

    A random ``jti`` makes every call produce a distinct token, even for the
    same account within the same second. ``iat`` and ``exp`` are aware datetimes.
    """
    claims = _base_claims(
        str(account_id),
        TokenType.REFRESH,
        expires_delta or timedelta(days=settings.refresh_token_expire_days),
    )
    claims["jti"] = uuid.uuid4().hex
    return _encode(claims), claims


def create_refresh_token(account_id: int, expires_delta: timedelta | None = None) -> str:
    """Create a refresh token."""
    token, _ = mint_refresh_token(account_id, expires_delta)
    return token


def create_action_token(
    account_id: int,
    token_type: TokenType,
    expires_delta: timedelta,
    extra: dict[str, Any] | None = None,
) -> str:
    """Create a single-purpose token (password reset, email verification)."""
    claims = _base_claims(str(account_id), token_type, expires_delta)
    claims["jti"] = uuid.uuid4().hex
    if extra:
        claims.update(extra)
    return _encode(claims)


def _signature_segment(token: str) -> str:
    """Return the signature segment once header and payload parse as JSON objects."""
    segments = token.split(".") if isinstance(token, str) else []
    if len(segments) != 3:
        raise MalformedTokenError("Malformed token")
    for segment in segments[:2]:
        try:
            decoded = json.loads(base64url_decode(segment))
        except ValueError as err:
            raise MalformedTokenError("Malformed token") from err
        if not isinstance(decoded, dict):
            raise MalformedTokenError("Malformed token")
    return segments[2]


def _is_canonical_base64url(segment: str) -> bool:
    try:
        return base64url_encode(base64url_decode(segment)).decode("ascii") == segment
    except ValueError:
        return False


def decode_token(token: str, expected_type: TokenType | None = None) -> dict[str, Any]:
    """Decode and verify a JWT token.

    The current key is tried first, then each previous key, so tokens signed
    before a key rotation keep verifying until they expire. Expiry is checked
    against ``clock.utc_now()``, the same clock that stamps issued tokens.

    Args:
        token: JWT token string
        expected_type: If given, the ``type`` claim must equal it

    Returns:
        Decoded token payload

    Raises:
        InvalidSignatureError: No accepted key matches the signature
        MalformedTokenError: Header or payload cannot be parsed
        ExpiredTokenError: Token has expired
        UnsupportedTokenError: Wrong algorithm, missing claims or unexpected type

    """
    # Any change to the signature segment, including non-canonical base64, is a bad signature
    if not _is_canonical_base64url(_signature_segment(token)):
        raise InvalidSignatureError("Token signature is invalid")

    payload: dict[str, Any] | None = None
    for key in settings.verification_keys:
        try:
            payload = jwt.decode(
                token,
                key,
                algorithms=[settings.jwt_algorithm],
                options={"require": REQUIRED_CLAIMS, "verify_exp": False, "verify_iat": False},
            )
            break
        except jwt_errors.InvalidSignatureError:
            continue
        except jwt_errors.InvalidAlgorithmError as err:
            raise UnsupportedTokenError("Unsupported signing algorithm") from err
        except jwt_errors.DecodeError as err:
            # Header and payload parsed, so the signature segment is what failed
            raise InvalidSignatureError("Token signature is invalid") from err
        except jwt_errors.InvalidTokenError as err:
            raise UnsupportedTokenError(str(err)) from err

    if payload is None:
        raise InvalidSignatureError("Token signature is invalid")

    if not all(isinstance(payload[claim], int | float) for claim in ("iat", "exp")):
        raise UnsupportedTokenError("Token timestamps must be NumericDate values")
    if payload["exp"] <= clock.utc_now().timestamp():
        raise ExpiredTokenError("Token has expired")

    try:
        token_type = TokenType(payload["type"])
    except ValueError as err:
        raise UnsupportedTokenError("Unknown token type") from err

    if expected_type is not None and token_type != expected_type:
        raise TokenTypeMismatchError(f"Invalid token type, expected {expected_type.value}")

    return payload


def get_token_type(token: str) -> TokenType:
    return TokenType(decode_token(token)["type"])


def get_subject(token: str) -> int:
    try:
        return int(decode_token(token)["sub"])
    except ValueError as err:
        raise UnsupportedTokenError("Subject is not an account id") from err


def get_expiry(token: str) -> datetime:
    return datetime.fromtimestamp(decode_token(token)["exp"], tz=UTC)


def password_fingerprint(hashed_password: str | None) -> str:
    """Short digest of the stored hash; changes whenever the password does."""
    return hashlib.sha256((hashed_password or "").encode("utf-8")).hexdigest()[:16]


def create_password_reset_token(account_id: int, hashed_password: str | None) -> str:
    return create_action_token(
        account_id,
        TokenType.PASSWORD_RESET,
        timedelta(minutes=settings.password_reset_token_expire_minutes),
        extra={"pwh": password_fingerprint(hashed_password)},
    )


def create_email_verification_token(account_id: int, email: str) -> str:
    return create_action_token(
        account_id,
        TokenType.EMAIL_VERIFICATION,
        timedelta(hours=settings.email_verification_token_expire_hours),
        extra={"email": email},
    )

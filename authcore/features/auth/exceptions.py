"""Authentication exceptions."""

from fastapi import HTTPException, status


class AuthenticationException(HTTPException):
    """Base authentication exception."""

    def __init__(self, detail: str = "Authentication failed"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class InvalidCredentialsException(AuthenticationException):
    """Raised for an unknown email and for a wrong password alike."""

    def __init__(self):
        super().__init__(detail="Invalid email or password")


class InvalidTokenException(AuthenticationException):
    """Raised when a token is unknown, forged or malformed."""

    def __init__(self, detail: str = "Invalid or expired token"):
        super().__init__(detail=detail)


class TokenExpiredException(InvalidTokenException):
    """Raised when a token has expired."""

    def __init__(self):
        super().__init__(detail="Token has expired")


class InvalidTokenTypeException(InvalidTokenException):
    """Raised when token type is invalid."""

    def __init__(self, expected: str = "access"):
        super().__init__(detail=f"Invalid token type, expected {expected}")


class RefreshTokenReusedException(InvalidTokenException):
    """Raised when an already revoked refresh token is presented again.

    Every refresh token of the owning account has been revoked by the time
    this is raised.
    """

    def __init__(self):
        super().__init__(detail="Refresh token has already been used")


class AccountLockedException(HTTPException):
    """Raised when the account is locked after repeated failed logins."""

    def __init__(self):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is locked. Reset your password or contact support.",
        )


class AccountDisabledException(HTTPException):
    """Raised when the account is disabled."""

    def __init__(self):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail="Account is disabled")


class TwoFactorException(HTTPException):
    """Base two-factor exception."""

    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class InvalidTwoFactorCodeException(TwoFactorException):
    def __init__(self):
        super().__init__(detail="Invalid two-factor code")


class TwoFactorNotInitializedException(TwoFactorException):
    def __init__(self):
        super().__init__(detail="Two-factor authentication has not been initialized")


class TwoFactorNotEnabledException(TwoFactorException):
    def __init__(self):
        super().__init__(detail="Two-factor authentication is not enabled")


class TwoFactorAlreadyEnabledException(TwoFactorException):
    def __init__(self):
        super().__init__(detail="Two-factor authentication is already enabled")


class FederatedLoginException(HTTPException):
    """Base exception for external identity provider logins."""

    def __init__(self, detail: str, status_code: int = status.HTTP_400_BAD_REQUEST):
        super().__init__(status_code=status_code, detail=detail)


class UnsupportedProviderException(FederatedLoginException):
    def __init__(self, provider: str):
        super().__init__(detail=f"Login with {provider} is not supported")


class MissingProviderEmailException(FederatedLoginException):
    def __init__(self):
        super().__init__(detail="Email not found from identity provider")


class ProviderMismatchException(FederatedLoginException):
    """Raised when the email already belongs to an account of another provider."""

    def __init__(self, registered_provider: str):
        super().__init__(
            detail=f"This email is already registered with {registered_provider}. "
            f"Please sign in with {registered_provider}.",
            status_code=status.HTTP_409_CONFLICT,
        )

"""Account-related exceptions."""

from fastapi import HTTPException, status


class AccountException(HTTPException):
    """Base account exception."""

    def __init__(self, detail: str = "Account operation failed", status_code: int = status.HTTP_400_BAD_REQUEST):
        super().__init__(status_code=status_code, detail=detail)


class EmailAlreadyExists(AccountException):
    """Raised when registering an email that is already taken."""

    def __init__(self):
        super().__init__(detail="Email is already registered", status_code=status.HTTP_409_CONFLICT)


class CaptchaVerificationFailed(AccountException):
    """Raised when the CAPTCHA oracle rejects the submitted token."""

    def __init__(self):
        super().__init__(detail="reCAPTCHA verification failed")

"""Account domain models."""

from datetime import datetime
from enum import StrEnum

from pwdlib import PasswordHash
from sqlalchemy import JSON, Boolean, Enum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from authcore.database.base import Base, TimestampMixin, UTCDateTime


class AccountRole(StrEnum):
    """Account roles."""

    USER = "user"


class AuthProvider(StrEnum):
    """Identity provider an account authenticates with.

    A single email never spans providers: an account created with a password
    stays LOCAL, one created through a federated login stays with that provider.
    """

    LOCAL = "local"
    GOOGLE = "google"
    FACEBOOK = "facebook"
    GITHUB = "github"


pwd_hasher = PasswordHash.recommended()

# Verified against when the account does not exist, so unknown emails cost the same as wrong passwords
_DUMMY_HASH = pwd_hasher.hash("authcore-timing-equalizer")


def normalize_email(email: str) -> str:
    return email.strip().lower()


class Account(Base, TimestampMixin):
    """Account model for authentication.

    Refresh tokens reference accounts by id only; the refresh token ledger owns
    those rows and the foreign key cascades on delete.
    """

    __tablename__ = "accounts"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Identity (email stored lowercase)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Authentication (federated accounts have no password)
    hashed_password: Mapped[str | None] = mapped_column(String(255), nullable=True)
    provider: Mapped[str] = mapped_column(
        Enum(AuthProvider, native_enum=False, length=50, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=AuthProvider.LOCAL.value,
        server_default=AuthProvider.LOCAL.value,
    )
    provider_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Authorization
    roles: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=lambda: [AccountRole.USER.value])

    # Status
    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")

    # Lockout
    locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    lock_time: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    failed_login_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_login_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # Two-factor
    totp_secret: Mapped[str | None] = mapped_column(String(64), nullable=True)
    totp_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")

    def verify_password(self, plain_password: str) -> bool:
        """Verify a password against the Argon2 hash.

        Accounts without a local password never match, but the hash work is
        still done.
        """
        if not self.hashed_password:
            pwd_hasher.verify(plain_password, _DUMMY_HASH)
            return False
        return pwd_hasher.verify(plain_password, self.hashed_password)

    @staticmethod
    def hash_password(password: str) -> str:
        """Hash a password using Argon2.

        Salt is automatically generated and embedded in the returned hash.
        """
        return pwd_hasher.hash(password)

    @staticmethod
    def burn_password_check(plain_password: str) -> None:
        """Spend the same hashing time as a real verification."""
        pwd_hasher.verify(plain_password, _DUMMY_HASH)

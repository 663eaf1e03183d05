"""External identity linking for federated (OAuth2/OIDC) logins.

Each supported provider maps its raw profile claims to a ``FederatedProfile``
through a plain function registered in ``PROFILE_MAPPERS``.
"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from authcore.features.account.models import Account, AccountRole, AuthProvider, normalize_email
from authcore.features.account.service import AccountService

from .exceptions import MissingProviderEmailException, ProviderMismatchException, UnsupportedProviderException

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FederatedProfile:
    provider: AuthProvider
    subject: str
    email: str | None
    first_name: str
    last_name: str
    avatar_url: str | None


def _google(claims: Mapping[str, Any]) -> FederatedProfile:
    return FederatedProfile(
        provider=AuthProvider.GOOGLE,
        subject=str(claims.get("sub", "")),
        email=claims.get("email"),
        first_name=claims.get("given_name") or "",
        last_name=claims.get("family_name") or "",
        avatar_url=claims.get("picture"),
    )


def _facebook(claims: Mapping[str, Any]) -> FederatedProfile:
    # Graph API nests the avatar as {"picture": {"data": {"url": ...}}}
    picture = claims.get("picture") or {}
    avatar_url = picture.get("data", {}).get("url") if isinstance(picture, dict) else None
    return FederatedProfile(
        provider=AuthProvider.FACEBOOK,
        subject=str(claims.get("id", "")),
        email=claims.get("email"),
        first_name=claims.get("first_name") or "",
        last_name=claims.get("last_name") or "",
        avatar_url=avatar_url,
    )


def _github(claims: Mapping[str, Any]) -> FederatedProfile:
    first_name, _, last_name = (claims.get("name") or claims.get("login") or "").partition(" ")
    return FederatedProfile(
        provider=AuthProvider.GITHUB,
        subject=str(claims.get("id", "")),
        email=claims.get("email"),
        first_name=first_name,
        last_name=last_name,
        avatar_url=claims.get("avatar_url"),
    )


PROFILE_MAPPERS: dict[str, Callable[[Mapping[str, Any]], FederatedProfile]] = {
    AuthProvider.GOOGLE.value: _google,
    AuthProvider.FACEBOOK.value: _facebook,
    AuthProvider.GITHUB.value: _github,
}


def map_profile(provider: str, claims: Mapping[str, Any]) -> FederatedProfile:
    """Map raw provider claims to a profile.

    Raises:
        UnsupportedProviderException: No mapper is registered for the provider
        MissingProviderEmailException: The provider did not share an email

    """
    mapper = PROFILE_MAPPERS.get(provider.lower())
    if mapper is None:
        raise UnsupportedProviderException(provider)

    profile = mapper(claims)
    if not profile.email:
        raise MissingProviderEmailException()
    return profile


async def resolve(session: AsyncSession, provider: str, claims: Mapping[str, Any]) -> Account:
    """Find or create the local account for a federated identity.

    Args:
        session: Database session
        provider: Provider name, e.g. ``google``
        claims: Profile claims returned by the provider

    Returns:
        The linked account (flushed, not committed)

    Raises:
        ProviderMismatchException: The email belongs to an account of another provider,
            including a local password account

    """
    profile = map_profile(provider, claims)
    account = await AccountService.get_by_email(session, profile.email)

    if account is not None:
        if account.provider != profile.provider.value:
            logger.warning(
                f"Federated login via {profile.provider.value} refused for {account.email}: "
                f"registered with {account.provider}"
            )
            raise ProviderMismatchException(account.provider)

        account.first_name = profile.first_name or account.first_name
        account.last_name = profile.last_name or account.last_name
        account.avatar_url = profile.avatar_url
        await session.flush()
        return account

    account = Account(
        email=normalize_email(profile.email),
        first_name=profile.first_name,
        last_name=profile.last_name,
        avatar_url=profile.avatar_url,
        provider=profile.provider.value,
        provider_id=profile.subject,
        roles=[AccountRole.USER.value],
        email_verified=True,
    )
    session.add(account)
    await session.flush()

    logger.info(f"New account linked via {profile.provider.value}: {account.email}")
    return account

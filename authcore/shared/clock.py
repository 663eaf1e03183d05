"""Clock abstraction.

Modules call ``clock.utc_now()`` through the module attribute so tests can
monkeypatch a fixed instant.
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)

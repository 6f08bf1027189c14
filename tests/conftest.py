"""Global pytest configuration and fixtures.

Tests run without a database: sessions and repositories are mocks, and the
async service methods run on the asyncio backend through anyio.
"""

import os
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

# Keep settings deterministic regardless of a developer's .env
os.environ.setdefault("STRIPE_SECRET_KEY", "")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "")
os.environ.setdefault("TWILIO_ACCOUNT_SID", "")
os.environ.setdefault("RUN_MIGRATIONS_ON_STARTUP", "false")

from delivery_api.core.settings import AppSettings  # noqa: E402


# =============================================================================
# Markers
# =============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings():
    """Settings with external providers switched off."""
    return AppSettings(
        _env_file=None,
        STRIPE_SECRET_KEY=None,
        STRIPE_WEBHOOK_SECRET=None,
        TWILIO_ACCOUNT_SID=None,
        TWILIO_AUTH_TOKEN=None,
        TWILIO_FROM_NUMBER=None,
        FREE_TIER_STARTING_CREDITS=500,
        FREE_CREDITS_ON_DOWNGRADE=500,
        PAYMENT_GRACE_PERIOD_DAYS=7,
    )


@pytest.fixture
def session():
    """A stand-in AsyncSession; `info` is a real dict so tenant_context works on it."""
    s = MagicMock()
    s.info = {}
    s.execute = AsyncMock()
    s.commit = AsyncMock()
    s.rollback = AsyncMock()
    s.flush = AsyncMock()
    s.refresh = AsyncMock()
    s.delete = AsyncMock()
    return s


def _ledger(**overrides):
    values = dict(
        balance=500,
        lifetime_earned=500,
        lifetime_spent=0,
        credits_used_today=0,
        credits_used_this_week=0,
        credits_used_this_month=0,
        warning_levels_sent=[],
        tier_status="free",
        is_free_tier=True,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.fixture
def make_ledger():
    """Factory for TenantCredit-shaped objects with free-tier defaults."""
    return _ledger

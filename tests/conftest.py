"""
Global pytest fixtures for the SpendLens test suite.

Provides:
- Test settings with retry waits disabled
- Settings cache isolation
- Billing record factories
"""
import os
from decimal import Decimal
from typing import Any, Callable

import pytest

# Set test environment BEFORE any spendlens imports
os.environ["TESTING"] = "true"
os.environ["ENVIRONMENT"] = "development"

from spendlens.modules.billing.domain.models import (  # noqa: E402
    AccountTotalRow,
    BillingDetailLine,
)
from spendlens.modules.billing.domain.tag_store import TagStore  # noqa: E402
from spendlens.shared.core.config import Settings, get_settings  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        TESTING=True,
        TAG_RESOLVE_MIN_WAIT_SECONDS=0,
        TAG_RESOLVE_MAX_WAIT_SECONDS=0,
    )


@pytest.fixture
def tag_store(settings: Settings) -> TagStore:
    return TagStore(settings=settings)


@pytest.fixture
def make_line() -> Callable[..., BillingDetailLine]:
    def _make(
        provider: str = "aws",
        resource_type: str = "ec2",
        amount: Any = "10",
        currency: str = "USD",
        **kwargs: Any,
    ) -> BillingDetailLine:
        return BillingDetailLine(
            provider=provider,
            resource_type=resource_type,
            amount=Decimal(str(amount)) if isinstance(amount, (int, float)) else amount,
            currency=currency,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_account() -> Callable[..., AccountTotalRow]:
    def _make(
        scope_id: str,
        provider: str = "aws",
        total: Any = "0",
        currency: str = "USD",
        **kwargs: Any,
    ) -> AccountTotalRow:
        return AccountTotalRow(
            scope_id=scope_id,
            provider=provider,
            total_amount=Decimal(str(total)),
            currency=currency,
            **kwargs,
        )

    return _make

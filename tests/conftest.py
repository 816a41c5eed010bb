# tests/conftest.py
import os
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

# Configuration is read at import time
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("MONGODB_URL", "mongodb://localhost:27017/rental_test_db")
os.environ.setdefault("APP_ENV", "test")

from rental_api.models.common import BaseRates, Validity  # noqa: E402


@pytest.fixture
def rates():
    return BaseRates(hourly=100, daily=800, weekly=4000)


@pytest.fixture
def always_valid():
    now = datetime.now(timezone.utc)
    return Validity(start_date=now - timedelta(days=30), end_date=now + timedelta(days=30))


@pytest.fixture
def make_rule(always_valid):
    def _make(rule_id="R1", priority=0, effect=None, conditions=None, enabled=True,
              product_id=None, category_id=None, validity=None, name=None):
        return SimpleNamespace(
            rule_id=rule_id,
            name=name or rule_id,
            priority=priority,
            effect=effect,
            conditions=conditions or [],
            enabled=enabled,
            product_id=product_id,
            category_id=category_id,
            validity=validity or always_valid,
        )
    return _make

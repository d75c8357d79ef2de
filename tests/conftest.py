# tests/conftest.py
from __future__ import annotations

import datetime
import os
from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("PUBLIC_RATE_LIMIT", "10000/minute")
os.environ.setdefault("ADMIN_RATE_LIMIT", "10000/minute")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.pop("REDIS_URL", None)

from coupon_drop.config import settings
from coupon_drop.main import create_app
from coupon_drop.repos.coupon_store import MemoryCouponStore, get_store


@pytest.fixture(autouse=True)
def pool_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "ADMIN_API_KEY", "test-admin-key")
    monkeypatch.setattr(settings, "COOLDOWN_MS", 30_000)
    monkeypatch.setattr(settings, "MINIMUM_COUPONS", 20)
    monkeypatch.setattr(settings, "REPLENISH_COUNT", 50)
    monkeypatch.setattr(settings, "INITIAL_SEED_COUNT", 100)
    monkeypatch.setattr(settings, "COUPON_CODE_LENGTH", 8)


@pytest.fixture()
def store() -> MemoryCouponStore:
    return MemoryCouponStore()


@pytest.fixture()
def now() -> datetime.datetime:
    return datetime.datetime(2024, 3, 1, 12, 0, 0, tzinfo=datetime.timezone.utc)


@pytest.fixture()
def client(store: MemoryCouponStore) -> Iterator[TestClient]:
    app = create_app()
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()

"""
Shared pytest fixtures and configuration for account-spine tests.

This module provides:
- Session tokens with full and restricted scope
- An in-memory gateway and a controller wired to it
- Deterministic randomness for generated passwords
- Environment and logging isolation

Usage:
    Fixtures are auto-discovered by pytest. Use them as function arguments.

    def test_create(controller, desired):
        result = controller.create(desired)
"""

from __future__ import annotations

import base64
import os
from collections.abc import Iterator
from typing import Any
from pathlib import Path

import jwt
import pytest
import structlog

from account_spine.gateway.memory import InMemoryAccountGateway
from account_spine.reconcile import DesiredConfiguration, LifecycleController

FULL_SCOPE = "com.atproto.access"
APP_PASS_SCOPE = "com.atproto.appPass"
_SIGNING_KEY = "account-spine-test-signing-key-not-a-secret"


def make_token(scope: Any, **claims) -> str:
    """Signed JWT carrying ``scope``; the signature is never verified."""
    payload = {"sub": "did:plc:caller", **claims}
    if scope is not None:
        payload["scope"] = scope
    return jwt.encode(payload, _SIGNING_KEY, algorithm="HS256")


def fixed_bytes(n: int) -> bytes:
    return bytes(range(n))


FIXED_PASSWORD = base64.urlsafe_b64encode(fixed_bytes(30)).decode("ascii")[:30]


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)
        if "cli" in test_path.parts:
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    """No ambient ACCOUNT_SPINE_* variables or .env file leak into a test."""
    for key in list(os.environ):
        if key.startswith("ACCOUNT_SPINE_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    yield


@pytest.fixture(autouse=True)
def reset_logging() -> Iterator[None]:
    yield
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


# =============================================================================
# Tokens
# =============================================================================


@pytest.fixture
def full_token() -> str:
    return make_token(FULL_SCOPE)


@pytest.fixture
def app_password_token() -> str:
    return make_token(APP_PASS_SCOPE)


# =============================================================================
# Engine
# =============================================================================


@pytest.fixture
def gateway() -> InMemoryAccountGateway:
    return InMemoryAccountGateway()


@pytest.fixture
def controller(gateway: InMemoryAccountGateway) -> LifecycleController:
    return LifecycleController(gateway, random_bytes=fixed_bytes)


@pytest.fixture
def desired() -> DesiredConfiguration:
    return DesiredConfiguration(handle="alice.example", email="a@example.com")


@pytest.fixture
def token_factory():
    """Build tokens with arbitrary scope and claims."""
    return make_token


@pytest.fixture
def fixed_password() -> str:
    """Password the ``controller`` fixture generates when none is supplied."""
    return FIXED_PASSWORD

"""Shared test fixtures for aumai-saga tests."""

from __future__ import annotations

import pytest

from aumai_saga.core import Transaction


@pytest.fixture()
def tx() -> Transaction:
    return Transaction()


@pytest.fixture()
def injecting_tx() -> Transaction:
    return Transaction({"user": "ada", "limit": 3}, inject_context=True)


@pytest.fixture()
def calls() -> list[str]:
    return []


@pytest.fixture()
def rollback_data() -> dict[str, list[str]]:
    """Shared mutable state that steps change and compensations restore."""
    original = ["a", "b", "c", "d", "e", "f"]
    return {"original": original, "mutated": list(original), "pre_rollback": []}

"""Pytest configuration — adds src/ and the test helpers to sys.path."""

import os
import sys

import pytest

# Add src/ to Python path so tests can import from drive_aggregator
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))
sys.path.insert(0, os.path.dirname(__file__))

from drive_fakes import FakeDrive, InMemoryAccountStore  # noqa: E402


@pytest.fixture
def fake_drive() -> FakeDrive:
    return FakeDrive()


@pytest.fixture
def account_store() -> InMemoryAccountStore:
    return InMemoryAccountStore()

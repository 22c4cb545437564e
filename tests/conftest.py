# tests/conftest.py
"""
Pytest configuration and fixtures for the Signal Wizard test suite.

Provides:
- A draft store, navigator and the full set of step controllers
- Scripted fakes for the enhancement and suggestion services
- A persisted signal parsed from wire-format data

Note: No test talks to a real backend. HTTP-level tests mock httpx with respx.
"""

import os

import pytest

# Set test environment before imports
os.environ["SIGNAL_WIZARD_ENV"] = "test"

from signal_wizard.config import WizardConfig
from signal_wizard.filter_mapper import FilterMapper
from signal_wizard.grammar import BooleanQueryGrammar
from signal_wizard.models import PersistedSignal
from signal_wizard.steps import WizardNavigator, build_controllers
from signal_wizard.store import SignalDraftStore

from tests.fixtures.data import API_URL, FakeEnhancer, FakeSuggester, make_persisted_signal


@pytest.fixture
def wizard_config():
    """Configuration pointing at the mocked API with a short debounce window."""
    return WizardConfig(
        environment="test",
        api_url=API_URL,
        api_key="test-api-key",
        timeout=5.0,
        suggestion_debounce_ms=50,
    )


@pytest.fixture
def store():
    return SignalDraftStore()


@pytest.fixture
def navigator(store):
    return WizardNavigator(store)


@pytest.fixture
def controllers(store, navigator):
    """All seven step controllers wired to ``store`` and ``navigator``."""
    return build_controllers(
        store,
        navigator,
        grammar=BooleanQueryGrammar(),
        mapper=FilterMapper(),
    )


@pytest.fixture
def fake_enhancer():
    return FakeEnhancer()


@pytest.fixture
def fake_suggester():
    return FakeSuggester()


@pytest.fixture
def persisted_signal():
    return PersistedSignal.model_validate(make_persisted_signal())

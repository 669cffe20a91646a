"""Pytest configuration and shared fixtures for testing"""

import copy
import sys
from pathlib import Path
from typing import Any, Dict

import pytest

# Add project root (and this directory, for the fakes module) to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(Path(__file__).parent))

from src.browser.interaction import InteractionEngine
from src.funnel.config import FunnelConfig, PacingConfig, SelectorConfig, TimeoutConfig
from funnel_fakes import BASE_URL, FakeDriver, FakeFunnel


FUNNEL_PAYLOAD: Dict[str, Any] = {
    "applicant": {
        "firstName": "Jane",
        "lastName": "Doe",
        "address": "123 Main St",
        "city": "Los Angeles",
        "state": "CA",
        "zipCode": "90001",
        "email": "jane.doe@gmail.com",
        "phone": "3105551234",
    },
    "vehicles": [
        {"year": 2020, "make": "Honda", "model": "Civic", "usage": "Commute", "ownership": "Owned", "garaged": "0"},
    ],
    "drivers": [
        {
            "firstName": "Jane",
            "lastName": "Doe",
            "dateOfBirth": "1990-05-15",
            "gender": "M",
            "maritalStatus": "S",
            "licenseState": "CA",
            "licenseStatus": "V",
        },
    ],
    "policy": {
        "currentlyInsured": True,
        "priorCarrier": "GEICO",
        "coverageLevel": "Standard",
        "contactMethod": "phone",
        "selectQuoteIndex": 0,
    },
}


@pytest.fixture
def funnel_payload() -> Dict[str, Any]:
    """California / 2020 Honda Civic / self-driver request"""
    return copy.deepcopy(FUNNEL_PAYLOAD)


@pytest.fixture
def fast_config(tmp_path: Path) -> FunnelConfig:
    """Config with no pacing and short timeouts, writing into tmp_path"""
    return FunnelConfig(
        url=BASE_URL,
        headless=True,
        screenshots_dir=str(tmp_path / "screenshots"),
        history_file=str(tmp_path / "submissions.json"),
        timeouts=TimeoutConfig(
            navigation_ms=1000,
            form_ready_ms=200,
            stage_probe_ms=100,
            dropdown_ms=200,
            continue_enabled_ms=200,
            garaging_dialog_ms=50,
            page_transition_ms=200,
            quote_results_ms=200,
            quote_fallback_ms=100,
            click_ms=100,
            poll_interval_ms=1,
        ),
        pacing=PacingConfig(jitter_min_ms=0, jitter_max_ms=0, typing_delay_ms=0),
    )


@pytest.fixture
def fake_driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture
def engine(fake_driver: FakeDriver) -> InteractionEngine:
    """Interaction engine over the fake driver with no pacing"""
    return InteractionEngine(
        fake_driver,
        correlation_id="test",
        jitter_ms=(0, 0),
        typing_delay_ms=0,
        poll_interval_ms=1,
        click_timeout_ms=100,
    )


@pytest.fixture
def fake_funnel() -> FakeFunnel:
    return FakeFunnel(contact_selector=SelectorConfig().contact_clickables)


@pytest.fixture
def test_fixture_path() -> Path:
    """Return the path to the test fixtures directory"""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def funnel_form_url(test_fixture_path: Path) -> str:
    """Return the file:// URL for the personal info form fixture"""
    fixture_path = test_fixture_path / "personal_info.html"
    return f"file://{fixture_path}"


# Pytest async configuration
def pytest_configure(config):
    """Configure pytest-asyncio and custom markers"""
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow (can be skipped with -m 'not slow')"
    )

"""Pytest configuration and shared fixtures."""

import pytest
import sys
from pathlib import Path

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tests.fixtures.test_inputs import (
    get_all_equity_input,
    get_lp_gp_classes,
    get_model_input,
    get_reference_tranche,
    get_standard_tiers,
)


@pytest.fixture
def model_input():
    """Ten-year levered hotel scenario."""
    return get_model_input()


@pytest.fixture
def all_equity_input():
    """Hotel scenario with no debt."""
    return get_all_equity_input()


@pytest.fixture
def reference_tranche():
    """30,000 / 4% / 3-year amortizing loan."""
    return get_reference_tranche()


@pytest.fixture
def lp_gp_classes():
    """90/10 LP/GP equity classes."""
    return get_lp_gp_classes()


@pytest.fixture
def standard_tiers():
    """ROC, compounding pref and promote with catch-up."""
    return get_standard_tiers()

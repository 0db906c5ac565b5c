"""
Pytest configuration for Panoptisana tests.

Test Tier System:
- fast (default): Pure unit tests, all I/O mocked
- medium: Timer/orchestrator tests, CLI runs, filesystem ops
- slow: Live Asana API (needs a real key)

Run tiers:
- pytest                          # Fast + Medium (default, addopts)
- pytest -m medium                # Medium only
- pytest -m fast                  # Fast only (quick feedback)
- pytest --override-ini="addopts=" -v   # Full suite (all tiers)

Note: Unmarked tests are auto-assigned to 'fast' tier.

API Key Safety:
- Fast/medium tests drop PANOPTISANA_API_KEY and PANOPTISANA_DEMO so a
  developer's .env never leaks into a unit test
"""

import os
import sys
from pathlib import Path

import pytest

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

LEAKY_ENV_VARS = ("PANOPTISANA_API_KEY", "PANOPTISANA_DEMO", "PANOPTISANA_MAX_SEARCH_PAGES", "PANOPTISANA_LOG_LEVEL")


# =============================================================================
# Tier Auto-Assignment
# =============================================================================

def pytest_collection_modifyitems(config, items):
    """
    Automatically assign tier markers to unmarked tests.

    Tests marked @pytest.mark.integration without a tier land in 'medium'.
    """
    for item in items:
        has_tier = (
            list(item.iter_markers(name='fast')) or
            list(item.iter_markers(name='medium')) or
            list(item.iter_markers(name='slow'))
        )
        if has_tier:
            continue

        if list(item.iter_markers(name='skip')):
            continue

        if list(item.iter_markers(name='integration')):
            item.add_marker(pytest.mark.medium)
            continue

        item.add_marker(pytest.mark.fast)


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Keep real credentials out of everything but slow tests."""
    markexpr = getattr(config.option, 'markexpr', '') or ''
    includes_slow_tests = (
        not markexpr or
        (
            'slow' in markexpr and
            'not slow' not in markexpr
        )
    )

    if not includes_slow_tests:
        for name in LEAKY_ENV_VARS:
            os.environ.pop(name, None)


# =============================================================================
# Session-Scoped Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def project_root():
    """Return project root path (session-scoped for efficiency)."""
    return PROJECT_ROOT

"""
Local pytest plugin shared by the whole test suite: hypothesis profile and
fixtures that keep imported test modules from leaking between tests.
"""
import sys

import hypothesis
import pytest


# Disable the "too slow" health checks. We are ok if data generation is slow
# https://hypothesis.readthedocs.io/en/latest/healthchecks.html#hypothesis.HealthCheck.too_slow
hypothesis.settings.register_profile("default", suppress_health_check=(hypothesis.HealthCheck.too_slow,))
hypothesis.settings.load_profile("default")


@pytest.fixture
def clean_modules():
    """Forget the modules a test imported so that the next test imports them fresh."""
    before = set(sys.modules)
    yield
    for name in set(sys.modules) - before:
        sys.modules.pop(name, None)

"""
Root conftest for all tests.

Lives at the project root so the root directory is on ``sys.path`` and
``tests.fixtures`` helpers are importable from any test module.
"""

import pytest

from config.settings import get_settings
from libs.common.logging.context import bind_principal_id, clear_trace_id
from libs.gateway_auth import clear_current_principal


@pytest.fixture(autouse=True)
def _reset_process_state():
    """Drop cached settings and per-request context variables between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    clear_current_principal()
    bind_principal_id(None)
    clear_trace_id()

import os

import pytest

from scenecast import logging_manager as log_mgr
from scenecast.config import get_rendering_config

_PRESERVED_ENV = {"SCENECAST_LOG_LEVEL", "SCENECAST_LOG_FILE"}


@pytest.fixture(autouse=True)
def _isolated_render_environment(monkeypatch):
    """Keep ``SCENECAST_*`` overrides and cached settings from leaking between tests."""

    for key in list(os.environ):
        if key.startswith("SCENECAST_") and key not in _PRESERVED_ENV:
            monkeypatch.delenv(key, raising=False)
    get_rendering_config.cache_clear()
    log_mgr.clear_log_context()
    yield
    get_rendering_config.cache_clear()
    log_mgr.clear_log_context()

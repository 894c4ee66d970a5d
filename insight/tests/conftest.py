import os

import pytest

from insight.config import reset_global_config

_ENV_PREFIXES = ("INSIGHT_", "VL_", "OPENAI_")


@pytest.fixture(autouse=True)
def clean_model_env(monkeypatch):
    """Keep developer .env / shell model settings out of the tests."""
    for key in list(os.environ):
        if key.startswith(_ENV_PREFIXES):
            monkeypatch.delenv(key, raising=False)
    reset_global_config()
    yield
    reset_global_config()

import pytest

from mcpilot.config import AppConfig, is_config_initialized, reset_config, set_config


@pytest.fixture(autouse=True)
def isolated_config(tmp_path):
    """Give every test a fresh configuration rooted in its tmp_path."""
    reset_config()
    set_config(AppConfig(openai_api_key="test-key", sessions_dir=str(tmp_path / "sessions")))
    yield
    if is_config_initialized():
        reset_config()

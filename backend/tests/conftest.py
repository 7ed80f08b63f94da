import sys
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def _test_env(monkeypatch: pytest.MonkeyPatch):
    # config is read once at import, so patch the module values directly
    from debate_server.core import config

    monkeypatch.setattr(config, "LLM_PROVIDER", "gemini")
    monkeypatch.setattr(config, "GEMINI_API_KEY", "test-key")


@pytest.fixture(autouse=True)
def _fresh_debate_handler():
    from debate_server.api import ws_debate

    ws_debate.reset_debate_handler()
    yield
    ws_debate.reset_debate_handler()

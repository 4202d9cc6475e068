import httpx
import pytest

from quartet import settings as settings_module
from quartet.settings import load_settings

REAL_READ_DOTENV = settings_module.read_dotenv

KEYS = {"GROQ_API_KEY": "groq-test-key", "GEMINI_API_KEY": "gemini-test-key"}

CHAT_OK = {"choices": [{"message": {"role": "assistant", "content": "4"}}]}
GEMINI_OK = {"candidates": [{"content": {"parts": [{"text": "4"}]}}]}


class Recorder:
    """httpx.MockTransport wrapper that remembers every request it served."""

    def __init__(self, handler):
        self.requests = []
        self._handler = handler
        self.transport = httpx.MockTransport(self._serve)

    def _serve(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)

    def hosts(self):
        return [r.url.host for r in self.requests]


def answer_both(request: httpx.Request) -> httpx.Response:
    if request.url.host == "generativelanguage.googleapis.com":
        return httpx.Response(200, json=GEMINI_OK)
    return httpx.Response(200, json=CHAT_OK)


@pytest.fixture(autouse=True)
def no_dotenv(monkeypatch):
    # a developer .env must never leak keys into the suite
    monkeypatch.setattr(settings_module, "read_dotenv", lambda: {})


@pytest.fixture
def settings():
    return load_settings(env=dict(KEYS))


@pytest.fixture
def recorder():
    return Recorder(answer_both)

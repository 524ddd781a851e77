import asyncio
import inspect
import os
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from http_lifecycle.core.client import HttpLifecycleClient  # noqa: E402
from http_lifecycle.models.request import TransportResponse  # noqa: E402

BASE = "https://api.test"
REFRESH_URL = f"{BASE}/refresh-token"


def pytest_configure(config):
    # Register the asyncio marker so pytest doesn't warn when it's used.
    config.addinivalue_line(
        "markers", "asyncio: mark test to run in an asyncio event loop"
    )
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "auth: mark test as testing token handling")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate tests from HTTP_LIFECYCLE_* variables and any local .env file."""
    for name in list(os.environ):
        if name.upper().startswith("HTTP_LIFECYCLE_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    yield


@dataclass
class SentRequest:
    method: str
    url: str
    params: Optional[Dict[str, Any]]
    body: Any
    headers: Dict[str, str]
    handle: Any
    timeout: Optional[float]


@dataclass
class ScriptedTransport:
    """Transport double answering from per-route scripts.

    Each route holds a list of steps consumed in order; the last step
    repeats. A step is a ``TransportResponse``, an exception instance to
    raise, or a (possibly async) callable receiving the ``SentRequest``.
    """

    routes: Dict[Tuple[str, str], List[Any]] = field(default_factory=dict)
    calls: List[SentRequest] = field(default_factory=list)
    closed: bool = False

    def add(self, method: str, url: str, *steps: Any) -> "ScriptedTransport":
        self.routes.setdefault((method.upper(), url), []).extend(steps)
        return self

    def calls_to(self, url: str, method: Optional[str] = None) -> List[SentRequest]:
        return [
            c for c in self.calls
            if c.url == url and (method is None or c.method == method.upper())
        ]

    async def send(self, method, url, params, body, headers, handle, timeout):
        call = SentRequest(method, url, params, body, dict(headers), handle, timeout)
        self.calls.append(call)
        steps = self.routes.get((method.upper(), url))
        if not steps:
            return TransportResponse(status=404, data={"error": "no route"})
        step = steps.pop(0) if len(steps) > 1 else steps[0]

        # Yield once so concurrent requests interleave like real I/O
        await asyncio.sleep(0)
        if isinstance(step, BaseException):
            raise step
        if callable(step):
            step = step(call)
            if inspect.isawaitable(step):
                step = await step
        return step

    async def aclose(self):
        self.closed = True


class FakeClock:
    """Settable clock returning epoch seconds, starting at the real time."""

    def __init__(self, start: Optional[float] = None):
        self.now = time.time() if start is None else start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def ok(data: Any, status: int = 200) -> TransportResponse:
    return TransportResponse(status=status, data=data, headers={})


def refresh_ok(token: str = "T2", expires_in: float = 3600) -> TransportResponse:
    return ok({"token": token, "expiresIn": expires_in})


async def wait_for_calls(transport: ScriptedTransport, count: int, limit: int = 100):
    """Yield to the loop until the transport has seen ``count`` calls."""
    for _ in range(limit):
        if len(transport.calls) >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"transport saw {len(transport.calls)} calls, expected {count}")


@pytest.fixture
def transport():
    return ScriptedTransport()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def observer():
    return MagicMock(spec=["on_duration", "on_unhandled_error"])


@pytest_asyncio.fixture
async def client(transport, observer, clock):
    """Client with a valid seeded token and scripted transport."""
    c = HttpLifecycleClient(
        transport=transport,
        observer=observer,
        clock=clock,
        base_address=BASE,
        refresh_endpoint=REFRESH_URL,
        refresh_token="refresh-1",
    )
    c.token_manager.set_token("T1", 3600)
    yield c
    await c.aclose()

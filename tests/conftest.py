"""Pytest config: PYTHONPATH and a fake Commons API behind httpx.MockTransport."""
import sys
from pathlib import Path

import httpx
import pytest

root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(root))

from commons_core import make_client  # noqa: E402
from tools_core import WikiImageTools  # noqa: E402


class FakeCommons:
    """Records every request and answers with a canned body, status or transport error."""

    def __init__(self):
        self.requests = []
        self.body = {"batchcomplete": "", "query": {"pages": {}}}
        self.status = 200
        self.text = None
        self.exc = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.exc is not None:
            raise self.exc
        if self.text is not None:
            return httpx.Response(self.status, text=self.text)
        return httpx.Response(self.status, json=self.body)

    @property
    def params(self) -> dict:
        return dict(self.requests[-1].url.params)


@pytest.fixture
def commons():
    return FakeCommons()


@pytest.fixture
def client_factory(commons):
    return lambda: make_client(transport=httpx.MockTransport(commons))


@pytest.fixture
async def tools(client_factory):
    async with client_factory() as client:
        yield WikiImageTools(client)

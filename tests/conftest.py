import asyncio
from typing import Callable

import pytest

from privacyai.transport.memory import InMemoryNetwork, InMemoryTransport


class StaticGenerator:
    """Generator returning a fixed reply, recording every prompt."""

    def __init__(self, reply: str = "Hi there"):
        self.reply = reply
        self.prompts: list[str] = []

    async def generate(self, text: str) -> str:
        self.prompts.append(text)
        return self.reply


class FailingGenerator:
    async def generate(self, text: str) -> str:
        raise RuntimeError("model crashed")


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays and returns immediately."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)
    await asyncio.wait_for(_poll(), timeout)


@pytest.fixture
def network() -> InMemoryNetwork:
    return InMemoryNetwork()


@pytest.fixture
def node(network: InMemoryNetwork) -> InMemoryTransport:
    return InMemoryTransport(network, name="node")


@pytest.fixture
def peer(network: InMemoryNetwork) -> InMemoryTransport:
    return InMemoryTransport(network, name="peer")

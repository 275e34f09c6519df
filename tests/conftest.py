import asyncio
import shutil
import tempfile
from collections.abc import AsyncIterator, Callable
from pathlib import Path

import pytest
import pytest_asyncio

from swi_control.adapters.unix_control import UnixSocketControlServer
from swi_control.domain.dispatcher import CommandDispatcher
from swi_control.domain.events import SubsystemEvent
from swi_control.domain.state import StateStore


class FakeRelay:
    def __init__(self, events: list[SubsystemEvent] | None = None, fail: bool = False) -> None:
        self._events = events or []
        self._fail = fail
        self.forwarded: list[int] = []
        self.started = False

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.started = False

    def forward(self, raw: int) -> None:
        if self._fail:
            raise OSError("relay device gone")
        self.forwarded.append(raw)

    async def events(self) -> AsyncIterator[SubsystemEvent]:
        for event in self._events:
            yield event


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def socket_dir():
    # AF_UNIX paths are limited to ~108 bytes, pytest's tmp_path can exceed that
    path = Path(tempfile.mkdtemp(prefix="swi-", dir="/tmp"))
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def socket_path(socket_dir):
    return str(socket_dir / "swi.sock")


@pytest.fixture
def store():
    return StateStore()


@pytest.fixture
def fake_relay():
    return FakeRelay()


@pytest.fixture
def dispatcher(store, fake_relay):
    return CommandDispatcher(store=store, relay=fake_relay)


@pytest_asyncio.fixture
async def server(dispatcher, socket_path):
    srv = UnixSocketControlServer(dispatcher=dispatcher, socket_path=socket_path)
    await srv.listen()
    task = asyncio.create_task(srv.serve())
    yield srv
    await srv.stop()
    await asyncio.wait_for(task, timeout=2.0)

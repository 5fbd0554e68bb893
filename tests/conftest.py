"""Shared fixtures: an in-memory OBS transport and a controller wired to it."""

import asyncio
from typing import Optional

import pytest

from ingest_switcher.controller import SwitcherController
from ingest_switcher.core import ConnectError, ConnectionConfig, OBSConnectionError
from ingest_switcher.links import LinkPreset, LinkStore


def settings_response(kind: str, **settings) -> dict:
    return {"kind": kind, "settings": settings}


async def settle(rounds: int = 10) -> None:
    """Let scheduled callbacks and background tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeOBSClient:
    """
    Stands in for OBSClient. With `manual = True` every request parks on a
    future in `pending` until the test resolves it, so tests control the order
    in which responses arrive.
    """

    def __init__(self, inputs: Optional[list[dict]] = None, settings: Optional[dict] = None):
        self.inputs = list(inputs or [])
        self.settings = dict(settings or {})
        self.connect_error: Optional[ConnectError] = None
        self.connect_gate: Optional[asyncio.Event] = None
        self.fail_requests = False
        self.manual = False
        self.pending: list[tuple[str, Optional[str], asyncio.Future]] = []
        self.set_calls: list[tuple[str, dict, bool]] = []
        self.factory_calls: list[dict] = []
        self.connected = False
        self.disconnect_calls = 0
        self._session_ended: list = []
        self._input_changed: list = []

    def factory(self, **kwargs) -> "FakeOBSClient":
        self.factory_calls.append(kwargs)
        return self

    async def connect(self) -> None:
        if self.connect_gate is not None:
            await self.connect_gate.wait()
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.connected = False

    def on_session_ended(self, callback) -> None:
        self._session_ended.append(callback)

    def on_input_settings_changed(self, callback) -> None:
        self._input_changed.append(callback)

    def emit_session_ended(self) -> None:
        self.connected = False
        for cb in list(self._session_ended):
            cb()

    def emit_input_changed(self, name: str) -> None:
        for cb in list(self._input_changed):
            cb(name)

    async def _respond(self, op: str, name: Optional[str], value):
        if self.fail_requests:
            raise OBSConnectionError(f"{op} failed")
        if self.manual:
            future = asyncio.get_running_loop().create_future()
            self.pending.append((op, name, future))
            return await future
        return value

    def resolve(self, index: int, value=None) -> None:
        _op, _name, future = self.pending.pop(index)
        future.set_result(value)

    async def get_input_list(self) -> list[dict]:
        return await self._respond("list", None, [dict(i) for i in self.inputs])

    async def get_input_settings(self, input_name: str):
        current = self.settings.get(input_name)
        value = None if current is None else {"kind": current["kind"], "settings": dict(current["settings"])}
        return await self._respond("get", input_name, value)

    async def set_input_settings(self, input_name: str, settings: dict, overlay: bool = True) -> dict:
        self.set_calls.append((input_name, settings, overlay))
        await self._respond("set", input_name, None)
        entry = self.settings.setdefault(input_name, {"kind": "", "settings": {}})
        entry["settings"].update(settings)
        return {"source": input_name, "settings": settings, "status": "ok"}


@pytest.fixture
def fake():
    return FakeOBSClient(
        inputs=[
            {"name": "Ingest A", "kind": "ffmpeg_source"},
            {"name": "Mic", "kind": "wasapi_input_capture"},
            {"name": "Web B", "kind": "browser_source"},
        ],
        settings={
            "Ingest A": settings_response("ffmpeg_source", local_file="/media/idle.mp4", is_local_file=True),
            "Web B": settings_response("browser_source", url="https://example.com/overlay"),
        },
    )


@pytest.fixture
def links():
    return LinkStore([
        LinkPreset(id="main", name="Main ingest", url="rtmp://x"),
        LinkPreset(id="file", name="Holding loop", url="/media/loop.mp4"),
        LinkPreset(id="srt", name="Backup SRT", url="srt://backup:9000"),
    ])


@pytest.fixture
def config():
    return ConnectionConfig(host="obs.local", port=4455, password="secret", timeout=1.0)


@pytest.fixture
def controller(fake, links, config):
    return SwitcherController(link_store=links, default_config=config, client_factory=fake.factory)

"""
Shared fixtures: compositor payloads, a scripted compositor connection and a
recorder for every process the supervisor starts or kills.
"""

import itertools
from collections.abc import Iterable

import pytest

from wlstreamer import supervisor
from wlstreamer.settings import Config


def make_output(name: str, width: int, height: int, active: bool = True) -> dict:
    output = {
        "name": name,
        "rect": {"x": 0, "y": 0, "width": width, "height": height},
        "active": active,
    }
    if active:
        output["current_mode"] = {"width": width, "height": height, "refresh": 60000}
    return output


def make_workspace(
    num: int, output: str, focused: bool = False, visible: bool = True
) -> dict:
    return {
        "name": str(num),
        "focus": [],
        "output": output,
        "focused": focused,
        "rect": {"x": 0, "y": 0, "width": 0, "height": 0},
        "visible": visible,
        "num": num,
    }


class FakeIPC:
    """
    Stands in for SwayIPCConnection. Every entry of `script` is the workspace
    list the compositor reports after the corresponding focus event.
    """

    def __init__(self, outputs: list[dict], workspaces: list[dict]):
        self.outputs = outputs
        self.workspaces = workspaces
        self.script: list[list[dict]] = []
        self.closed = False

    async def get_outputs(self) -> list[dict]:
        return self.outputs

    async def get_workspaces(self) -> list[dict]:
        return self.workspaces

    async def subscribe_focus_events(self, events: Iterable[str] = ()):
        for workspaces in self.script:
            self.workspaces = workspaces
            yield "window"

    async def close(self, socket_names=None):
        self.closed = True


class FakeProcess:
    pids = itertools.count(1000)

    def __init__(self, argv: list[str]):
        self.argv = argv
        self.pid = next(self.pids)
        self.returncode = None

    async def wait(self) -> int:
        self.returncode = -9
        return self.returncode


class ProcessLog:
    def __init__(self):
        self.events: list[tuple[str, object]] = []
        self.running: dict[int, FakeProcess] = {}

    @property
    def spawned(self) -> list[list[str]]:
        return [argv for kind, argv in self.events if kind == "spawn"]

    @property
    def killed(self) -> list[int]:
        return [pid for kind, pid in self.events if kind == "kill"]

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture
def config() -> Config:
    return Config(devices_from=3, scaler_delay=0)


@pytest.fixture
def processes(monkeypatch) -> ProcessLog:
    log = ProcessLog()

    async def fake_spawn(argv: list[str], verbose: bool) -> FakeProcess:
        process = FakeProcess(argv)
        log.events.append(("spawn", argv))
        log.running[process.pid] = process
        return process

    def fake_terminate(process: FakeProcess) -> None:
        log.events.append(("kill", process.pid))
        log.running.pop(process.pid, None)

    monkeypatch.setattr(supervisor, "spawn", fake_spawn)
    monkeypatch.setattr(supervisor, "terminate", fake_terminate)
    return log

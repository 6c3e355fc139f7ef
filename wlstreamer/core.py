import asyncio
import logging
import os
import sys
from collections import defaultdict
from collections.abc import Iterable
from typing import AsyncGenerator

import orjson

from wlstreamer.data_types import Output, Workspace
from wlstreamer.errors import IPCError

logger = logging.getLogger(__name__)

JSONValue = (
    bool
    | str
    | None
    | float
    | dict[str, "JSONInnerValue"]
    | list[dict[str, "JSONInnerValue"]]
)
JSONInnerValue = JSONValue | list[dict[str, JSONValue]]
JSONDict = dict[str, JSONValue]
JSONList = list[JSONDict]

magic_string = "i3-ipc"
magic_len = len(magic_string)
magic_enc = magic_string.encode()
payload_len_len = 4  # length of payload length
payload_type_len = 4  # length of payload type
header_len = magic_len + payload_len_len + payload_type_len

GET_WORKSPACES = 1
SUBSCRIBE = 2
GET_OUTPUTS = 3

FOCUS_EVENTS = ("window", "workspace")

_events = {
    0x80000000: "workspace",
    0x80000001: "output",
    0x80000002: "mode",
    0x80000003: "window",
    0x80000004: "barconfig_update",
    0x80000005: "binding",
    0x80000006: "shutdown",
    0x80000007: "tick",
    0x80000014: "bar_state_update",
    0x80000015: "input",
}
EVENT_NAMES = frozenset(_events.values())


def socket_path() -> str:
    path = next(
        (p for name in ["SWAYSOCK", "I3SOCK"] if (p := os.environ.get(name))), None
    )
    if not path:
        raise IPCError("Could not find the socket, is SWAYSOCK set?")
    return path


def encode_message(payload_type: int, command: bytes = b"") -> bytes:
    data = magic_enc
    data += len(command).to_bytes(payload_len_len, sys.byteorder)
    data += payload_type.to_bytes(payload_type_len, sys.byteorder)
    data += command
    return data


def decode_header(header: bytes) -> tuple[int, int]:
    """Returns the `(payload length, payload type)` encoded in `header`."""
    if header[:magic_len] != magic_enc:
        raise IPCError(f"Invalid magic string in reply: {header[:magic_len]!r}")

    payload_length_bytes = header[magic_len : magic_len + payload_len_len]
    payload_type_bytes = header[magic_len + payload_len_len :]
    return (
        int.from_bytes(payload_length_bytes, sys.byteorder),
        int.from_bytes(payload_type_bytes, sys.byteorder),
    )


def is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def valid_workspace(ws: JSONDict) -> bool:
    return (
        isinstance(ws.get("output"), str)
        and is_int(ws.get("num"))
        and isinstance(ws.get("visible"), bool)
        and isinstance(ws.get("focused"), bool)
    )


def valid_output(output: JSONDict) -> bool:
    """Disabled outputs have no `current_mode`, active ones need a full one."""
    if not isinstance(output.get("name"), str):
        return False
    if (mode := output.get("current_mode")) is None:
        return True
    return (
        isinstance(mode, dict) and is_int(mode.get("width")) and is_int(mode.get("height"))
    )


class SwayIPCSocket:
    def __init__(self):
        self.lock = asyncio.Lock()
        self.reader: asyncio.StreamReader = None  # pyright: ignore
        self.writer: asyncio.StreamWriter = None  # pyright: ignore

    async def connect(self):
        path = socket_path()
        try:
            self.reader, self.writer = await asyncio.open_unix_connection(path=path)
        except OSError as e:
            raise IPCError(f"Could not connect to {path}: {e}") from e

    async def send(self, payload_type: int, command=b""):
        if not self.writer:  # first time calling, create socket
            await self.connect()

        self.writer.write(encode_message(payload_type, command))
        try:
            await self.writer.drain()
        except OSError as e:
            raise IPCError(f"Could not write to the compositor: {e}") from e

    async def read_message(self) -> tuple[int, JSONDict | JSONList]:
        try:
            header = await self.reader.readexactly(header_len)
        except asyncio.IncompleteReadError as e:
            if not e.partial:  # hung up between messages
                raise EOFError("compositor closed the connection") from e
            raise IPCError("Truncated message from the compositor") from e
        except OSError as e:
            raise IPCError(f"Could not read from the compositor: {e}") from e

        payload_length, payload_type = decode_header(header)
        try:
            raw_response = await self.reader.readexactly(payload_length)
        except (asyncio.IncompleteReadError, OSError) as e:
            raise IPCError("Truncated message from the compositor") from e

        try:
            return payload_type, orjson.loads(raw_response)
        except orjson.JSONDecodeError as e:
            raise IPCError(f"Invalid json from the compositor: {e}") from e

    async def receive(self) -> JSONDict | JSONList:
        try:
            _, payload = await self.read_message()
        except EOFError as e:
            raise IPCError("The compositor closed the connection") from e
        return payload

    async def receive_event(self) -> tuple[str, JSONDict]:
        """Raises EOFError once the compositor hangs up."""
        event_int, payload = await self.read_message()
        return _events.get(event_int, "unknown"), payload  # pyright: ignore

    async def close(self):
        if self.writer and not self.writer.is_closing():
            self.writer.close()
            try:
                await self.writer.wait_closed()
            except OSError:
                pass  # the peer may already be gone

    async def send_receive(self, payload_type: int, command=b"") -> JSONDict | JSONList:
        async with self.lock:  # ensure only one coroutine is in this block at a time
            await self.send(payload_type, command)
            return await self.receive()


class SwayIPCConnection:
    def __init__(self) -> None:
        self.sockets = defaultdict(lambda: SwayIPCSocket())

    async def _get_list(self, name: str, payload_type: int) -> JSONList:
        reply = await self.sockets[name].send_receive(payload_type)
        if not isinstance(reply, list) or not all(isinstance(r, dict) for r in reply):
            raise IPCError(f"Unexpected reply to {name}: {reply!r}")
        return reply

    async def get_workspaces(self) -> list[Workspace]:
        workspaces = await self._get_list("get_workspaces", GET_WORKSPACES)
        for ws in workspaces:
            if not valid_workspace(ws):
                raise IPCError(f"Malformed workspace from get_workspaces: {ws!r}")
        logger.debug("Found workspaces %s", workspaces)
        return workspaces  # pyright: ignore

    async def get_outputs(self) -> list[Output]:
        outputs = await self._get_list("get_outputs", GET_OUTPUTS)
        for output in outputs:
            if not valid_output(output):
                raise IPCError(f"Malformed output from get_outputs: {output!r}")
        logger.debug("Found outputs %s", outputs)
        return outputs  # pyright: ignore

    async def subscribe_focus_events(
        self, events: Iterable[str] = FOCUS_EVENTS
    ) -> AsyncGenerator[str, None]:
        """
        Yields the name of every event the compositor sends for `events`. The
        payload is not interpreted, only the arrival matters. Returns when the
        compositor closes the connection.
        """
        events = list(events)
        if not events or not set(events) <= EVENT_NAMES:
            raise IPCError(f"Invalid events to subscribe to: {events}")

        socket = self.sockets["subscribe"]
        reply = await socket.send_receive(SUBSCRIBE, orjson.dumps(events))
        if not isinstance(reply, dict) or not reply.get("success"):
            raise IPCError(f"Could not subscribe with {events}")

        try:
            while True:
                try:
                    event, _ = await socket.receive_event()
                except EOFError:
                    logger.info("Compositor closed the event stream")
                    return
                yield event
        finally:
            await self.close(["subscribe"])

    async def close(self, socket_names: list[str] | None = None):
        if socket_names is None:
            socket_names = list(self.sockets.keys())

        for name in socket_names:
            if (socket := self.sockets.pop(name, None)) is not None:
                await socket.close()

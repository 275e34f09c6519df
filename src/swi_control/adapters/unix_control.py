import asyncio
import itertools
import logging
import os
import socket
import stat
from dataclasses import dataclass
from pathlib import Path

from swi_control.domain.commands import (
    START,
    STOP,
    Command,
    decode,
    encode,
    is_ambiguous,
    parse_value,
    set_value,
)
from swi_control.domain.dispatcher import CommandDispatcher
from swi_control.ports.control import BindError, ConnectError, ListenerClosed

logger = logging.getLogger(__name__)

DEFAULT_SOCKET_PATH = "/dev/swi"


def socket_is_live(path: str | Path) -> bool:
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        sock.connect(str(path))
        return True
    except (ConnectionRefusedError, FileNotFoundError):
        return False
    finally:
        sock.close()


def _clear_stale_socket(path: Path) -> None:
    try:
        mode = path.lstat().st_mode
    except FileNotFoundError:
        return

    if not stat.S_ISSOCK(mode):
        raise BindError(f"{path} exists and is not a socket")
    try:
        live = socket_is_live(path)
    except OSError as exc:
        raise BindError(f"Cannot check {path}: {exc}") from exc
    if live:
        raise BindError(f"{path} is already bound by a running server")

    path.unlink()
    logger.info("Removed stale socket %s", path)


class Connection:
    def __init__(
        self,
        conn_id: int,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        self.conn_id = conn_id
        self._reader = reader
        self._writer = writer
        self._closed = asyncio.Event()

    @property
    def is_open(self) -> bool:
        return not self._closed.is_set()

    async def read_byte(self, timeout: float | None = None) -> int | None:
        if timeout:
            data = await asyncio.wait_for(self._reader.read(1), timeout=timeout)
        else:
            data = await self._reader.read(1)
        if not data:
            return None
        return data[0]

    async def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except OSError as exc:
            logger.debug("Client #%d closed with error: %s", self.conn_id, exc)

    async def wait_closed(self) -> None:
        await self._closed.wait()


class UnixSocketControlServer:
    def __init__(
        self,
        dispatcher: CommandDispatcher,
        socket_path: str = DEFAULT_SOCKET_PATH,
        socket_mode: int = 0o666,
        read_timeout: float | None = None,
        reject_concurrent: bool = True,
    ) -> None:
        self._dispatcher = dispatcher
        self._socket_path = socket_path
        self._socket_mode = socket_mode
        self._read_timeout = read_timeout or None
        self._reject_concurrent = reject_concurrent

        self._server: asyncio.Server | None = None
        self._pending: asyncio.Queue[Connection | None] = asyncio.Queue()
        self._connections: set[Connection] = set()
        self._active: Connection | None = None
        self._ids = itertools.count(1)
        self._served = 0
        self._closed = False

    @property
    def socket_path(self) -> str:
        return self._socket_path

    @property
    def served_count(self) -> int:
        return self._served

    @property
    def is_listening(self) -> bool:
        return self._server is not None and not self._closed

    @property
    def active_connection(self) -> Connection | None:
        return self._active

    async def listen(self) -> None:
        socket_file = Path(self._socket_path)
        _clear_stale_socket(socket_file)

        try:
            self._server = await asyncio.start_unix_server(
                self._handle_client,
                path=self._socket_path,
            )
        except OSError as exc:
            raise BindError(f"Cannot bind {self._socket_path}: {exc}") from exc

        try:
            os.chmod(self._socket_path, self._socket_mode)
        except OSError as exc:
            logger.warning("Could not chmod %s: %s", self._socket_path, exc)
        logger.info("Control socket listening at %s", self._socket_path)

    async def accept(self) -> Connection:
        if self._server is None or self._closed:
            raise ListenerClosed(f"Listener on {self._socket_path} is not open")
        conn = await self._pending.get()
        if conn is None:
            raise ListenerClosed(f"Listener on {self._socket_path} was closed")
        self._active = conn
        return conn

    async def serve(self) -> None:
        while True:
            try:
                conn = await self.accept()
            except ListenerClosed:
                logger.info("Control listener closed")
                return
            await self.handle_connection(conn)

    async def handle_connection(self, conn: Connection) -> None:
        logger.info("Client #%d connected", conn.conn_id)
        try:
            while True:
                raw = await conn.read_byte(self._read_timeout)
                if raw is None:
                    logger.info("Client #%d disconnected", conn.conn_id)
                    break
                self._dispatcher.dispatch(raw)
        except asyncio.TimeoutError:
            logger.warning(
                "Client #%d idle for %.1fs, closing",
                conn.conn_id, self._read_timeout,
            )
        except OSError as exc:
            logger.warning("Read error on client #%d: %s", conn.conn_id, exc)
        except Exception:
            logger.exception("Error handling control client #%d", conn.conn_id)
        finally:
            await conn.close()
            if self._active is conn:
                self._active = None
            self._served += 1

    async def stop(self) -> None:
        self._closed = True
        if self._server:
            self._server.close()

        for conn in list(self._connections):
            await conn.close()
        while not self._pending.empty():
            queued = self._pending.get_nowait()
            if queued is not None:
                await queued.close()
        self._pending.put_nowait(None)

        if self._server:
            await self._server.wait_closed()
            self._server = None

        socket_file = Path(self._socket_path)
        if socket_file.exists():
            socket_file.unlink()

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        conn = Connection(next(self._ids), reader, writer)
        if self._closed:
            await conn.close()
            return

        if self._reject_concurrent and self._active is not None:
            logger.warning(
                "Rejecting client #%d, client #%d still connected",
                conn.conn_id, self._active.conn_id,
            )
            await conn.close()
            return

        self._connections.add(conn)
        if self._reject_concurrent:
            self._active = conn
        try:
            await self._pending.put(conn)
            await conn.wait_closed()
        finally:
            self._connections.discard(conn)


@dataclass(frozen=True)
class SendResult:
    ok: bool
    command: Command | None = None
    error: str | None = None


class UnixSocketControlClient:
    def __init__(
        self,
        socket_path: str = DEFAULT_SOCKET_PATH,
        connect_timeout: float = 5.0,
    ) -> None:
        self._socket_path = socket_path
        self._connect_timeout = connect_timeout
        self._writer: asyncio.StreamWriter | None = None

    @property
    def is_connected(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    async def connect(self) -> None:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_unix_connection(self._socket_path),
                timeout=self._connect_timeout,
            )
        except (OSError, asyncio.TimeoutError) as exc:
            raise ConnectError(f"Cannot connect to {self._socket_path}: {exc}") from exc
        self._writer = writer
        logger.debug("Connected to %s", self._socket_path)

    async def reconnect(self) -> None:
        await self.close()
        await self.connect()

    async def close(self) -> None:
        if self._writer is None:
            return
        writer, self._writer = self._writer, None
        writer.close()
        try:
            await writer.wait_closed()
        except OSError as exc:
            logger.debug("Error closing control connection: %s", exc)

    async def send(self, command: Command) -> SendResult:
        if not self.is_connected:
            return SendResult(ok=False, command=command, error="not connected")

        if is_ambiguous(command):
            logger.warning(
                "%s uses a reserved byte and will be read as %s",
                command, decode(command.value),
            )

        try:
            self._writer.write(encode(command))
            await self._writer.drain()
        except OSError as exc:
            logger.debug("Send of %s failed: %s", command, exc)
            return SendResult(ok=False, command=command, error=str(exc))
        return SendResult(ok=True, command=command)

    async def send_start(self) -> SendResult:
        return await self.send(START)

    async def send_stop(self) -> SendResult:
        return await self.send(STOP)

    async def send_value(self, value: int) -> SendResult:
        try:
            command = set_value(value)
        except ValueError as exc:
            return SendResult(ok=False, error=str(exc))
        return await self.send(command)

    async def send_text(self, text: str) -> SendResult:
        try:
            value = parse_value(text)
        except ValueError as exc:
            return SendResult(ok=False, error=str(exc))
        return await self.send_value(value)

import asyncio
import logging
import os
import select
import termios
import threading
import tty
from collections.abc import AsyncIterator

import janus

from swi_control.domain.events import MAX_LINE_BYTES, SubsystemEvent, parse_subsystem_line

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 0.2


def configure_tty(fd: int, baudrate: int) -> None:
    speed = getattr(termios, f"B{baudrate}", None)
    if speed is None:
        raise ValueError(f"Unsupported baudrate: {baudrate}")

    tty.setraw(fd)
    iflag, oflag, cflag, lflag, _, _, cc = termios.tcgetattr(fd)

    # 8N1, no flow control, receiver on
    cflag &= ~(termios.PARENB | termios.PARODD | termios.CSTOPB)
    cflag &= ~getattr(termios, "CRTSCTS", 0)
    cflag |= termios.CLOCAL | termios.CREAD
    iflag &= ~(termios.IXON | termios.IXOFF | termios.IXANY)
    cc[termios.VMIN] = 1
    cc[termios.VTIME] = 0

    termios.tcsetattr(fd, termios.TCSANOW, [iflag, oflag, cflag, lflag, speed, speed, cc])


def open_device(device: str, baudrate: int) -> int:
    fd = os.open(device, os.O_RDWR | os.O_NOCTTY)
    try:
        if os.isatty(fd):
            configure_tty(fd, baudrate)
    except (OSError, ValueError, termios.error):
        os.close(fd)
        raise
    return fd


class SerialRelay:
    def __init__(
        self,
        device: str,
        baudrate: int = 115200,
        queue_size: int = 256,
    ) -> None:
        self._device = device
        self._baudrate = baudrate
        self._queue_size = queue_size
        self._fd: int | None = None
        self._outbound: janus.Queue[bytes] | None = None
        self._inbound: janus.Queue[SubsystemEvent | None] | None = None
        self._stopping = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def device(self) -> str:
        return self._device

    @property
    def is_open(self) -> bool:
        return self._fd is not None

    async def start(self) -> None:
        self._fd = await asyncio.to_thread(open_device, self._device, self._baudrate)
        self._outbound = janus.Queue(maxsize=self._queue_size)
        self._inbound = janus.Queue()
        self._stopping.clear()

        self._threads = [
            threading.Thread(target=self._write_loop, name="swi-relay-writer", daemon=True),
            threading.Thread(target=self._read_loop, name="swi-relay-reader", daemon=True),
        ]
        for thread in self._threads:
            thread.start()
        logger.info("Relay started (device=%s, baud=%d)", self._device, self._baudrate)

    async def stop(self) -> None:
        self._stopping.set()
        for queue in (self._outbound, self._inbound):
            if queue is not None:
                queue.close()
                await queue.wait_closed()
        for thread in self._threads:
            await asyncio.to_thread(thread.join, 2.0)
        self._threads = []
        self._outbound = None
        self._inbound = None

        if self._fd is not None:
            os.close(self._fd)
            self._fd = None
            logger.info("Relay stopped (device=%s)", self._device)

    def forward(self, raw: int) -> None:
        if self._outbound is None:
            logger.debug("Relay not started, dropping byte 0x%02x", raw)
            return
        try:
            self._outbound.async_q.put_nowait(bytes([raw, 0x0A]))
        except janus.AsyncQueueFull:
            logger.warning("Relay queue full, dropping byte 0x%02x", raw)

    async def events(self) -> AsyncIterator[SubsystemEvent]:
        if not self._inbound:
            return
        while True:
            try:
                event = await self._inbound.async_q.get()
            except janus.AsyncQueueShutDown:
                break
            if event is None:
                break
            yield event

    def _write_loop(self) -> None:
        while True:
            try:
                frame = self._outbound.sync_q.get()
            except janus.SyncQueueShutDown:
                break
            try:
                os.write(self._fd, frame)
            except OSError as exc:
                logger.warning("Relay write to %s failed: %s", self._device, exc)

    def _read_loop(self) -> None:
        buffer = b""
        while not self._stopping.is_set():
            try:
                ready, _, _ = select.select([self._fd], [], [], POLL_INTERVAL_SECONDS)
                if not ready:
                    continue
                chunk = os.read(self._fd, MAX_LINE_BYTES)
            except (OSError, ValueError) as exc:
                if not self._stopping.is_set():
                    logger.warning("Relay read from %s failed: %s", self._device, exc)
                break
            if not chunk:
                logger.info("Relay device %s reached end of input", self._device)
                break

            buffer += chunk
            while b"\n" in buffer:
                line, _, buffer = buffer.partition(b"\n")
                if not self._publish(line):
                    return
            if len(buffer) >= MAX_LINE_BYTES:
                logger.debug("Discarding unterminated subsystem line %r", buffer)
                buffer = b""

        self._publish_end()

    def _publish(self, line: bytes) -> bool:
        event = parse_subsystem_line(line)
        if event is None:
            logger.debug("Ignoring subsystem line %r", line)
            return True
        try:
            self._inbound.sync_q.put(event)
        except janus.SyncQueueShutDown:
            return False
        return True

    def _publish_end(self) -> None:
        try:
            self._inbound.sync_q.put(None)
        except janus.SyncQueueShutDown:
            pass

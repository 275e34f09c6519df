from dataclasses import dataclass, field
from time import time

MAX_LINE_BYTES = 64


@dataclass(frozen=True)
class SubsystemEvent:
    timestamp: float = field(default_factory=time)


@dataclass(frozen=True)
class KeyDown(SubsystemEvent):
    code: int = 0


@dataclass(frozen=True)
class KeyUp(SubsystemEvent):
    code: int = 0


@dataclass(frozen=True)
class PinInput(SubsystemEvent):
    raw: bytes = b""


@dataclass(frozen=True)
class DebugMessage(SubsystemEvent):
    text: str = ""


def _key_code(line: bytes, keyword: bytes) -> int | None:
    start = line.find(keyword)
    # keyword, one separator byte, then the key code byte
    index = start + len(keyword) + 1
    if index >= len(line):
        return None
    return line[index]


def parse_subsystem_line(line: bytes) -> SubsystemEvent | None:
    line = line[:MAX_LINE_BYTES]

    if b"KEYDOWN" in line:
        code = _key_code(line, b"KEYDOWN")
        return KeyDown(code=code) if code is not None else None
    if b"KEYUP" in line:
        code = _key_code(line, b"KEYUP")
        return KeyUp(code=code) if code is not None else None
    if b"PINPUT" in line:
        return PinInput(raw=line[line.find(b"PINPUT"):].rstrip(b"\r\n"))
    if b"DEBUG" in line:
        text = line[line.find(b"DEBUG"):].rstrip(b"\r\n")
        return DebugMessage(text=text.decode(errors="replace"))
    return None

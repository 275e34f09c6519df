from dataclasses import dataclass
from enum import Enum, auto

START_BYTE = 0x50  # 'P'
STOP_BYTE = 0x45  # 'E'
RESERVED_BYTES = frozenset({START_BYTE, STOP_BYTE})

MIN_VALUE = 0
MAX_VALUE = 255


class CommandKind(Enum):
    START = auto()
    STOP = auto()
    SET = auto()


@dataclass(frozen=True)
class Command:
    kind: CommandKind
    value: int | None = None

    def __str__(self) -> str:
        if self.kind is CommandKind.SET:
            return f"SET({self.value})"
        return self.kind.name


START = Command(CommandKind.START)
STOP = Command(CommandKind.STOP)


def set_value(value: int) -> Command:
    if not MIN_VALUE <= value <= MAX_VALUE:
        raise ValueError(f"Value {value} out of range {MIN_VALUE}-{MAX_VALUE}")
    return Command(CommandKind.SET, value)


def decode(raw: int) -> Command:
    # raw is one byte value 0-255, e.g. data[i] of a received bytes object
    if raw == START_BYTE:
        return START
    if raw == STOP_BYTE:
        return STOP
    return set_value(raw)


def encode(command: Command) -> bytes:
    if command.kind is CommandKind.START:
        return bytes([START_BYTE])
    if command.kind is CommandKind.STOP:
        return bytes([STOP_BYTE])
    return bytes([command.value])


def is_ambiguous(command: Command) -> bool:
    # A SET carrying a reserved byte decodes as START/STOP on the server.
    return command.kind is CommandKind.SET and command.value in RESERVED_BYTES


def parse_value(text: str) -> int:
    stripped = text.strip()
    try:
        value = int(stripped)
    except ValueError:
        raise ValueError(f"Not an integer: {text!r}") from None
    if not MIN_VALUE <= value <= MAX_VALUE:
        raise ValueError(f"Value {value} out of range {MIN_VALUE}-{MAX_VALUE}")
    return value

import threading
from dataclasses import dataclass, replace

from swi_control.domain.commands import MAX_VALUE, MIN_VALUE, Command, CommandKind


@dataclass(frozen=True)
class RuntimeState:
    running: bool = False
    value: int = 0


def apply_command(state: RuntimeState, command: Command) -> RuntimeState:
    if command.kind is CommandKind.START:
        return replace(state, running=True)
    if command.kind is CommandKind.STOP:
        return replace(state, running=False)
    return replace(state, value=command.value)


class StateStore:
    """Process-wide RuntimeState holder.

    The record is immutable and swapped under a lock, so readers always see
    a state produced by a whole command.
    """

    def __init__(self, initial: RuntimeState | None = None) -> None:
        initial = initial or RuntimeState()
        if not MIN_VALUE <= initial.value <= MAX_VALUE:
            raise ValueError(f"Initial value {initial.value} out of range {MIN_VALUE}-{MAX_VALUE}")
        self._state = initial
        self._lock = threading.Lock()
        self._applied = 0

    @property
    def applied_count(self) -> int:
        with self._lock:
            return self._applied

    def snapshot(self) -> RuntimeState:
        with self._lock:
            return self._state

    def apply(self, command: Command) -> tuple[RuntimeState, RuntimeState]:
        with self._lock:
            previous = self._state
            self._state = apply_command(previous, command)
            self._applied += 1
            return previous, self._state

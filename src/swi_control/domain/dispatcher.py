import logging

from swi_control.domain.commands import Command, decode
from swi_control.domain.state import StateStore
from swi_control.ports.control import CommandRelayPort

logger = logging.getLogger(__name__)


class CommandDispatcher:
    def __init__(
        self,
        store: StateStore,
        relay: CommandRelayPort | None = None,
    ) -> None:
        self._store = store
        self._relay = relay

    def dispatch(self, raw: int) -> Command:
        command = decode(raw)
        previous, current = self._store.apply(command)

        if previous != current:
            logger.info(
                "State: running=%s value=%d -> running=%s value=%d (%s)",
                previous.running, previous.value,
                current.running, current.value,
                command,
            )
        else:
            logger.debug("Command %s left state unchanged", command)

        if self._relay is not None:
            try:
                self._relay.forward(raw)
            except Exception:
                logger.exception("Failed to relay byte 0x%02x", raw)

        return command

    def dispatch_all(self, data: bytes) -> list[Command]:
        return [self.dispatch(raw) for raw in data]

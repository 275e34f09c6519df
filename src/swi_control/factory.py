import logging

from swi_control.adapters.serial_relay import SerialRelay
from swi_control.adapters.unix_control import UnixSocketControlServer
from swi_control.config import SwiControlConfig
from swi_control.domain.dispatcher import CommandDispatcher
from swi_control.domain.state import RuntimeState, StateStore
from swi_control.ports.control import ControlPort

logger = logging.getLogger(__name__)


def create_store(config: SwiControlConfig) -> StateStore:
    return StateStore(RuntimeState(running=False, value=config.initial_value))


def create_relay(config: SwiControlConfig) -> SerialRelay | None:
    if not config.relay_device:
        return None
    return SerialRelay(device=config.relay_device, baudrate=config.relay_baudrate)


def create_server(
    config: SwiControlConfig,
) -> tuple[ControlPort, StateStore, SerialRelay | None]:
    store = create_store(config)
    relay = create_relay(config)
    dispatcher = CommandDispatcher(store=store, relay=relay)

    server = UnixSocketControlServer(
        dispatcher=dispatcher,
        socket_path=config.socket_path,
        socket_mode=config.socket_mode,
        read_timeout=config.read_timeout,
        reject_concurrent=config.reject_concurrent,
    )
    return server, store, relay

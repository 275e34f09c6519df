from swi_control.adapters.serial_relay import SerialRelay
from swi_control.adapters.unix_control import UnixSocketControlServer
from swi_control.config import SwiControlConfig
from swi_control.domain.state import RuntimeState
from swi_control.factory import create_relay, create_server, create_store
from swi_control.ports.control import ControlPort


class TestFactory:
    def test_store_uses_initial_value(self):
        store = create_store(SwiControlConfig(initial_value=12))
        assert store.snapshot() == RuntimeState(running=False, value=12)

    def test_no_relay_by_default(self):
        assert create_relay(SwiControlConfig(relay_device="")) is None

    def test_relay_from_config(self):
        relay = create_relay(SwiControlConfig(relay_device="/dev/ttyAMA3", relay_baudrate=57600))
        assert isinstance(relay, SerialRelay)
        assert relay.device == "/dev/ttyAMA3"
        assert not relay.is_open

    def test_create_server_wires_config(self, socket_path):
        config = SwiControlConfig(socket_path=socket_path, relay_device="")
        server, store, relay = create_server(config)
        assert isinstance(server, ControlPort)
        assert isinstance(server, UnixSocketControlServer)
        assert server.socket_path == socket_path
        assert not server.is_listening
        assert relay is None
        assert store.snapshot() == RuntimeState()

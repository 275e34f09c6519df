from typing import AsyncIterator, Protocol, runtime_checkable

from swi_control.domain.events import SubsystemEvent


class ControlChannelError(Exception):
    pass


class BindError(ControlChannelError):
    pass


class ListenerClosed(ControlChannelError):
    pass


class ConnectError(ControlChannelError):
    pass


@runtime_checkable
class ControlPort(Protocol):
    async def listen(self) -> None: ...
    async def serve(self) -> None: ...
    async def stop(self) -> None: ...


class CommandRelayPort(Protocol):
    async def start(self) -> None: ...
    async def stop(self) -> None: ...
    def forward(self, raw: int) -> None: ...
    def events(self) -> AsyncIterator[SubsystemEvent]: ...

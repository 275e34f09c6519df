import argparse
import asyncio
import logging
import os
import signal
import sys
import termios
from pathlib import Path

from swi_control.config import SwiControlConfig
from swi_control.log_format import setup_logging

ENV_FILE_PATH = Path.home() / ".config" / "swi-control" / "env"

CLIENT_COMMANDS = ("start", "stop", "set")


def _load_env_file(path: Path | None = None) -> None:
    path = path or ENV_FILE_PATH
    if not path.exists():
        return
    with open(path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip().strip("'\"")
            if key not in os.environ:
                os.environ[key] = value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="swi-control",
        description="Steering wheel interface control channel",
    )
    parser.add_argument("--socket", help="Control socket path")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("serve", help="Run the control daemon (default)")
    subparsers.add_parser("start", help="Send START")
    subparsers.add_parser("stop", help="Send STOP")

    set_parser = subparsers.add_parser("set", help="Send SET with a value from 0 to 255")
    set_parser.add_argument("value", help="Value to set")

    return parser


def main(argv: list[str] | None = None) -> None:
    _load_env_file()
    args = build_parser().parse_args(argv)

    config = SwiControlConfig()
    if args.socket:
        config.socket_path = args.socket

    setup_logging(verbose=args.verbose, log_file=config.log_file, color=config.log_color)

    if args.command in CLIENT_COMMANDS:
        sys.exit(asyncio.run(_run_client_command(args, config)))
    sys.exit(asyncio.run(_run_daemon(config)))


async def _run_client_command(args: argparse.Namespace, config: SwiControlConfig) -> int:
    from swi_control.adapters.unix_control import UnixSocketControlClient
    from swi_control.ports.control import ConnectError

    client = UnixSocketControlClient(socket_path=config.socket_path)

    try:
        await client.connect()
    except ConnectError as exc:
        logging.debug("%s", exc)
        print("Control daemon is not running", file=sys.stderr)
        return 1

    try:
        if args.command == "start":
            result = await client.send_start()
        elif args.command == "stop":
            result = await client.send_stop()
        elif args.command == "set":
            result = await client.send_text(args.value)
        else:
            print(f"Unknown command: {args.command}", file=sys.stderr)
            return 1
    finally:
        await client.close()

    if not result.ok:
        print(f"Send failed: {result.error}", file=sys.stderr)
        return 1
    print(f"Sent {result.command}")
    return 0


async def _log_subsystem_events(relay) -> None:
    from swi_control.domain.events import DebugMessage, KeyDown, KeyUp, PinInput

    async for event in relay.events():
        if isinstance(event, KeyDown):
            logging.info("Subsystem key down: %d", event.code)
        elif isinstance(event, KeyUp):
            logging.info("Subsystem key up: %d", event.code)
        elif isinstance(event, PinInput):
            logging.info("Subsystem pin input: %r", event.raw)
        elif isinstance(event, DebugMessage):
            logging.debug("Subsystem %s", event.text)


async def _run_daemon(config: SwiControlConfig) -> int:
    from swi_control.factory import create_server
    from swi_control.health import has_critical_failures, run_startup_checks
    from swi_control.ports.control import BindError

    results = run_startup_checks(config)
    if has_critical_failures(results):
        logging.error("Critical health check failures, aborting startup")
        return 1

    server, store, relay = create_server(config)

    try:
        await server.listen()
    except BindError as exc:
        logging.error("Cannot start control server: %s", exc)
        return 1

    if relay is not None:
        try:
            await relay.start()
        except (OSError, ValueError, termios.error) as exc:
            logging.warning("Relay %s unavailable, commands will not be forwarded: %s", relay.device, exc)

    shutdown_event = asyncio.Event()
    shutdown_triggered = False

    def handle_signal() -> None:
        nonlocal shutdown_triggered
        if shutdown_triggered:
            logging.warning("Forced exit")
            sys.exit(1)
        shutdown_triggered = True
        logging.info("Shutting down...")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal)

    serve_task = asyncio.create_task(server.serve())
    events_task = None
    if relay is not None and relay.is_open:
        events_task = asyncio.create_task(_log_subsystem_events(relay))

    try:
        await shutdown_event.wait()
    finally:
        await server.stop()
        try:
            await asyncio.wait_for(serve_task, timeout=3.0)
        except (asyncio.CancelledError, asyncio.TimeoutError):
            pass
        if events_task is not None:
            events_task.cancel()
            try:
                await asyncio.wait_for(events_task, timeout=1.0)
            except (asyncio.CancelledError, asyncio.TimeoutError):
                pass
        if relay is not None:
            await relay.stop()

    state = store.snapshot()
    logging.info(
        "Final state: running=%s value=%d (%d commands applied)",
        state.running, state.value, store.applied_count,
    )
    return 0

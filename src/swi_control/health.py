import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path

from swi_control.config import SwiControlConfig

logger = logging.getLogger(__name__)


@dataclass
class HealthCheckResult:
    name: str
    passed: bool
    detail: str


def run_startup_checks(config: SwiControlConfig) -> list[HealthCheckResult]:
    results = [
        _check_socket_dir(config),
        _check_socket_path(config),
        _check_relay_device(config),
    ]

    passed = sum(1 for r in results if r.passed)

    logger.info("Health check: %d/%d passed", passed, len(results))
    for result in results:
        level = logging.INFO if result.passed else logging.WARNING
        symbol = "OK" if result.passed else "FAIL"
        logger.log(level, "  [%s] %s: %s", symbol, result.name, result.detail)

    return results


def has_critical_failures(results: list[HealthCheckResult]) -> bool:
    critical_checks = {"socket_dir", "socket_path"}
    return any(not r.passed and r.name in critical_checks for r in results)


def _check_socket_dir(config: SwiControlConfig) -> HealthCheckResult:
    name = "socket_dir"
    parent = Path(config.socket_path).parent
    if not parent.is_dir():
        return HealthCheckResult(name=name, passed=False, detail=f"{parent} does not exist")
    if not os.access(parent, os.W_OK | os.X_OK):
        return HealthCheckResult(name=name, passed=False, detail=f"{parent} is not writable")
    return HealthCheckResult(name=name, passed=True, detail=f"{parent} is writable")


def _check_socket_path(config: SwiControlConfig) -> HealthCheckResult:
    name = "socket_path"
    path = Path(config.socket_path)
    try:
        mode = path.lstat().st_mode
    except FileNotFoundError:
        return HealthCheckResult(name=name, passed=True, detail=f"{path} is free")
    except OSError as exc:
        return HealthCheckResult(name=name, passed=False, detail=str(exc))

    if not stat.S_ISSOCK(mode):
        return HealthCheckResult(name=name, passed=False, detail=f"{path} exists and is not a socket")
    # listen() connects to it and refuses to replace a live one
    return HealthCheckResult(name=name, passed=True, detail=f"Existing socket at {path}, bind checks whether it is still served")


def _check_relay_device(config: SwiControlConfig) -> HealthCheckResult:
    name = "relay_device"
    if not config.relay_device:
        return HealthCheckResult(name=name, passed=True, detail="Skipped (no relay configured)")
    if not os.path.exists(config.relay_device):
        return HealthCheckResult(name=name, passed=False, detail=f"{config.relay_device} not found, commands will not be relayed")
    if not os.access(config.relay_device, os.R_OK | os.W_OK):
        return HealthCheckResult(name=name, passed=False, detail=f"{config.relay_device} is not readable and writable")
    return HealthCheckResult(name=name, passed=True, detail=f"{config.relay_device} available ({config.relay_baudrate} baud)")

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SwiControlConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SWI_CONTROL_")

    socket_path: str = "/dev/swi"
    socket_mode: int = 0o666

    read_timeout_seconds: float = Field(default=0.0, ge=0.0)
    reject_concurrent: bool = True

    initial_value: int = Field(default=0, ge=0, le=255)

    relay_device: str = ""
    relay_baudrate: int = 115200

    log_file: str = ""
    log_color: bool = True

    @property
    def read_timeout(self) -> float | None:
        return self.read_timeout_seconds or None

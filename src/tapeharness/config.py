from __future__ import annotations

from pathlib import Path
from typing import Any, List, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .utils import read_json

TRUTHY_VALUES = {"1", "true", "yes", "on"}


def parse_toggle(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in TRUTHY_VALUES


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TAPEHARNESS_")

    # Guest execution is opt-in: unset means host only.
    guest_test: bool = False
    target: Literal["host", "guest"] = "host"
    env_name: str = "valida"
    guest_runner: List[str] = Field(
        default_factory=lambda: ["valida", "run", "{artifact}", "{log}"]
    )
    build_command: List[str] = Field(default_factory=list)
    artifacts: List[Path] = Field(default_factory=list)
    timeout_multiplier: float = 20.0
    timeout_floor_s: float = 10.0
    handshake_timeout_s: float = 5.0
    poll_interval_s: float = 0.01

    @field_validator("guest_test", mode="before")
    @classmethod
    def _parse_guest_test(cls, value: Any) -> bool:
        return parse_toggle(value)

    def guest_timeout(self, host_duration: float) -> float:
        return max(host_duration * self.timeout_multiplier, self.timeout_floor_s)


def load_settings(config: Path | None = None, **overrides: Any) -> Settings:
    data: dict[str, Any] = {}
    if config is not None:
        loaded = read_json(config)
        if isinstance(loaded, dict):
            data.update(loaded)
    data.update({key: value for key, value in overrides.items() if value is not None})
    return Settings(**data)

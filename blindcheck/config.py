from dataclasses import dataclass, fields
from typing import Dict, Any, Optional
import yaml

from .errors import ConfigError

@dataclass
class EngineConfig:
    """
    Callback server and polling settings.

    YAML layout:

        callback_server:
          callback_address: 203.0.113.7
          callback_port: 8881
          callback_domain: oob.example.net   # optional, enables DNS callbacks
          polling_uri: http://203.0.113.7:8880
          attempt_timeout: 5
          initial_interval: 1
          max_interval: 5
          backoff_multiplier: 1.5
          verify_tls: true
    """
    callback_address: Optional[str] = None
    callback_port: int = 8881
    callback_domain: Optional[str] = None
    polling_uri: Optional[str] = None

    # Poll loop
    attempt_timeout: float = 5.0
    initial_interval: float = 1.0
    max_interval: float = 5.0
    backoff_multiplier: float = 1.5

    verify_tls: bool = True

    @property
    def callback_enabled(self) -> bool:
        return bool((self.callback_address or self.callback_domain) and self.polling_uri)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        known = {f.name: f for f in fields(cls)}
        unknown = set(data) - set(known)
        if unknown:
            raise ConfigError(f"Unknown callback_server keys: {', '.join(sorted(unknown))}")

        values = {}
        for key, value in data.items():
            if value is None:
                values[key] = None
                continue
            try:
                if key == "callback_port":
                    values[key] = int(value)
                elif key in ("attempt_timeout", "initial_interval", "max_interval", "backoff_multiplier"):
                    values[key] = float(value)
                elif key == "verify_tls":
                    if not isinstance(value, bool):
                        raise ValueError("expected true/false")
                    values[key] = value
                else:
                    values[key] = str(value)
            except (TypeError, ValueError) as e:
                raise ConfigError(f"Invalid value for {key}: {value!r} ({e})") from e

        config = cls(**values)
        config.validate()
        return config

    def validate(self):
        if not 0 < self.callback_port < 65536:
            raise ConfigError(f"callback_port out of range: {self.callback_port}")
        if self.attempt_timeout <= 0 or self.initial_interval <= 0:
            raise ConfigError("attempt_timeout and initial_interval must be positive")
        if self.max_interval < self.initial_interval:
            raise ConfigError("max_interval must be >= initial_interval")
        if self.backoff_multiplier < 1.0:
            raise ConfigError("backoff_multiplier must be >= 1.0")


def load_config(path: str) -> EngineConfig:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Error loading config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    section = data.get("callback_server") or {}
    if not isinstance(section, dict):
        raise ConfigError(f"{path}: 'callback_server' must be a mapping")
    return EngineConfig.from_dict(section)

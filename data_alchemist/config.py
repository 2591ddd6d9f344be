from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

SUPPORTED_CONFIG_SUFFIXES = {".json"}


@dataclass(frozen=True)
class Settings:
    apply_confidence_threshold: float = 0.8
    consistency_threshold: float = 0.1
    weight_tolerance: float = 0.01
    saturation_factor: float = 2.0
    output_dir: str = "data-alchemist-output"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


DEFAULT_SETTINGS = Settings()


def settings_from_dict(payload: dict[str, Any]) -> Settings:
    known = {item.name: item for item in fields(Settings)}
    unknown = sorted(set(payload) - set(known))
    if unknown:
        raise ValueError(f"Unknown config keys: {', '.join(unknown)}")
    values: dict[str, Any] = {}
    for key, value in payload.items():
        if key == "output_dir":
            if not isinstance(value, str) or not value.strip():
                raise ValueError("Config key 'output_dir' must be a non-empty string.")
            values[key] = value
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"Config key '{key}' must be a number.")
        if value < 0:
            raise ValueError(f"Config key '{key}' must not be negative.")
        values[key] = float(value)
    return Settings(**values)


def load_settings(path: Path | str | None) -> Settings:
    if path is None:
        return DEFAULT_SETTINGS
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")
    if config_path.suffix.lower() not in SUPPORTED_CONFIG_SUFFIXES:
        raise ValueError("Config must be a .json file.")
    try:
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Could not read config: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Config root must be a JSON object.")
    return settings_from_dict(payload)


def starter_config() -> dict[str, Any]:
    return DEFAULT_SETTINGS.to_dict()

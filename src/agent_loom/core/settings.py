"""Per-scope settings persisted as ``settings.local.json``."""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List

from ..errors import ValidationError
from ..utils import read_json_if_exists, write_json_atomic
from .models import ALL_PROVIDERS, Settings
from .scope import CANONICAL_DIRNAME


def normalize_providers(values: Iterable[str]) -> List[str]:
    """Lowercase, validate and order providers the way ALL_PROVIDERS lists them."""
    requested = set()
    for value in values:
        for part in str(value).split(","):
            name = part.strip().lower()
            if not name:
                continue
            if name not in ALL_PROVIDERS:
                raise ValidationError(
                    f"Unknown provider: {name}. Supported providers: {', '.join(ALL_PROVIDERS)}"
                )
            requested.add(name)
    return [p for p in ALL_PROVIDERS if p in requested]


def global_settings_path(home_dir: Path) -> Path:
    return home_dir / CANONICAL_DIRNAME / "settings.local.json"


def load_settings(path: Path) -> Settings:
    """Read settings, falling back to defaults for missing or invalid keys."""
    try:
        data = read_json_if_exists(path)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(data, dict):
        return Settings()

    settings = Settings()
    if data.get("lastScope") in ("local", "global"):
        settings.last_scope = data["lastScope"]
    providers = data.get("defaultProviders")
    if isinstance(providers, list):
        known = [p for p in providers if isinstance(p, str) and p.lower() in ALL_PROVIDERS]
        if known:
            settings.default_providers = normalize_providers(known)
    return settings


def settings_to_dict(settings: Settings) -> Dict[str, Any]:
    data: Dict[str, Any] = {"version": 1}
    if settings.last_scope:
        data["lastScope"] = settings.last_scope
    data["defaultProviders"] = list(settings.default_providers)
    return data


def save_settings(path: Path, settings: Settings) -> None:
    write_json_atomic(path, settings_to_dict(settings))

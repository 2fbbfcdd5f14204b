"""Configuration management utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


class ConfigManager:
    """YAML-backed loader for engine settings and workflow templates."""

    def __init__(self, base_path: str | Path):
        self._base_path = Path(base_path)

    def load(self, name: str) -> dict[str, Any]:
        """Load a YAML configuration by name without file extension."""
        path = self._base_path / f"{name}.yaml"
        if not path.exists():
            path = self._base_path / f"{name}.yml"
        with path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Configuration {name!r} must be a YAML mapping")
        return loaded

    def load_templates(self, name: str = "templates") -> list[dict[str, Any]]:
        """Load workflow template payloads stored under a ``templates`` key."""
        data = self.load(name)
        templates = data.get("templates", [])
        if not isinstance(templates, list):
            raise ValueError("'templates' must be a list of template mappings")
        return templates


__all__ = ["ConfigManager"]

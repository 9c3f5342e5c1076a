"""Application configuration management."""

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from audience_builder.rules.catalogue import DEFAULT_CATALOGUE, FieldCatalogue
from audience_builder.segments import Segment


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="AUDIENCE_BUILDER_",
        env_file=[
            ".env",  # Project-level defaults (lower priority)
            Path.home() / ".config" / "audience-builder" / ".env",  # User config (higher priority)
        ],
        env_file_encoding="utf-8",
    )

    # Paths
    config_dir: Path = Field(
        default=Path.home() / ".config" / "audience-builder",
        description="Configuration directory",
    )
    segments_file: str = Field(
        default="segments.yaml", description="Segment definitions filename"
    )
    catalogue_file: str | None = Field(
        default=None, description="Optional field catalogue filename (YAML)"
    )
    contacts_file: str = Field(
        default="contacts.json", description="Default contacts export to evaluate against"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_dir: Path = Field(
        default=Path.home() / ".config" / "audience-builder" / "logs",
        description="Directory for log files (per-segment logs written here)",
    )
    log_rotation_size_mb: int = Field(
        default=5, ge=1, description="Max size per log file in MB before rotation"
    )
    log_backup_count: int = Field(
        default=3, ge=0, description="Number of rotated log files to keep"
    )

    @property
    def segments_path(self) -> Path:
        """Full path to segments file."""
        return self.config_dir / self.segments_file

    @property
    def catalogue_path(self) -> Path | None:
        """Full path to catalogue file, if one is configured."""
        if not self.catalogue_file:
            return None
        return self.config_dir / self.catalogue_file

    @property
    def contacts_path(self) -> Path:
        """Full path to the default contacts file."""
        return self.config_dir / self.contacts_file

    def ensure_config_dir(self) -> None:
        """Create config directory if it doesn't exist."""
        self.config_dir.mkdir(parents=True, exist_ok=True)


def load_segments(path: Path) -> list[Segment]:
    """Load segment definitions from a YAML file."""
    if not path.exists():
        return []

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping with a 'segments' list in {path}")
    items = data.get("segments") or []
    if not isinstance(items, list):
        raise ValueError(f"'segments' must be a list in {path}")

    return [Segment.model_validate(item) for item in items]


def save_segments(path: Path, segments: list[Segment]) -> None:
    """Save segment definitions to a YAML file."""
    path.parent.mkdir(parents=True, exist_ok=True)

    data = {"segments": [s.model_dump(mode="json") for s in segments]}
    with open(path, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)


def load_contacts(path: Path) -> list[dict[str, Any]]:
    """
    Load contact records from a JSON or YAML file.

    The file holds either a list of records or a mapping with a
    ``contacts`` list.
    """
    with open(path) as f:
        if path.suffix.lower() in (".yaml", ".yml"):
            data = yaml.safe_load(f)
        else:
            data = json.load(f)

    if isinstance(data, dict):
        data = data.get("contacts", [])
    if not isinstance(data, list):
        raise ValueError(f"Expected a list of contacts in {path}")

    return [record for record in data if isinstance(record, dict)]


def load_catalogue(path: Path | None) -> FieldCatalogue:
    """Load a field catalogue from YAML, or the default contact catalogue."""
    if path is None or not path.exists():
        return DEFAULT_CATALOGUE

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    return FieldCatalogue.model_validate(data)

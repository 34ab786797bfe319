"""Configuration models for the sync engine."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Final, Self

from platformdirs import user_config_dir
from pydantic import BaseModel, ConfigDict, Field


if TYPE_CHECKING:
    import os


APP_NAME: Final = "docsync"
CONFIG_DIR: Final = Path(user_config_dir(APP_NAME))
DEFAULT_CONFIG_FILE: Final = CONFIG_DIR / "config.yml"


class SyncConfig(BaseModel):
    """Tuning for debounced saving and change reconciliation.

    Can be loaded from a YAML file:

        # config.yml
        debounce_delay: 1.5
        protection_window: 2.0
        autosave: true
    """

    debounce_delay: float = Field(
        default=1.0,
        gt=0,
        examples=[1.0, 1.5],
        title="Debounce delay",
    )
    """Seconds without edits before pending content is written."""

    protection_window: float = Field(
        default=2.0,
        ge=0,
        examples=[2.0],
        title="Protection window",
    )
    """Seconds after a save during which change notifications count as self-echo."""

    autosave: bool = Field(
        default=True,
        title="Auto-save",
    )
    """Whether edits are written automatically after the debounce delay."""

    watch_debounce_ms: int = Field(
        default=100,
        ge=0,
        title="Watch debounce",
    )
    """Milliseconds the file watcher groups raw filesystem events into one batch."""

    encoding: str = Field(
        default="utf-8",
        title="Text encoding",
    )
    """Encoding used for reading and writing documents."""

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_file(cls, path: str | os.PathLike[str]) -> Self:
        """Load sync configuration from a YAML file.

        Raises:
            ValueError: If loading or validation fails
        """
        import yamling

        try:
            data = yamling.load_yaml_file(path) or {}
            return cls.model_validate(data)
        except Exception as exc:
            msg = f"Failed to load sync config from {path}"
            raise ValueError(msg) from exc

    @classmethod
    def load_default(cls) -> Self:
        """Load the user config file if present, otherwise use defaults."""
        if DEFAULT_CONFIG_FILE.exists():
            return cls.from_file(DEFAULT_CONFIG_FILE)
        return cls()

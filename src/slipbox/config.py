"""Configuration loading.

The configuration is a small YAML file::

    root: ~/zettelkasten          # the note tree
    template: ~/.config/slipbox/template.md
    link_sep: " | "
    workers: 8

It is looked up in this order:

1. the path passed to :func:`load_config`
2. ``$SLIPBOX_CONFIG``
3. ``$XDG_CONFIG_HOME/slipbox/slipbox.yaml``
4. ``~/.config/slipbox/slipbox.yaml``

A missing file is created with the defaults. ``$SLIPBOX_ROOT`` overrides
``root``. Relative paths are taken relative to ``$HOME``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Annotated, Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from slipbox.errors import ConfigError
from slipbox.formatter import DEFAULT_LINK_SEP

log = logging.getLogger(__name__)

#: Name of the index file inside the note tree
DATABASE_FILE = ".slipbox.db"


def _default_root() -> Path:
    return Path.home() / "zettelkasten"


class Config(BaseModel):
    """Settings read from the configuration file."""

    model_config = ConfigDict(extra="ignore")

    # The managed note tree
    root: Path = Field(default_factory=_default_root)
    # Optional creation template with ${TITLE} and ${DATE} placeholders
    template: Optional[Path] = None
    link_sep: str = Field(default=DEFAULT_LINK_SEP, strict=True)
    # Rebuild worker-pool size; None means one per CPU
    workers: Optional[Annotated[int, Field(strict=True, gt=0)]] = None

    @model_validator(mode="before")
    @classmethod
    def _warn_unknown_keys(cls, data: Any) -> Any:
        if isinstance(data, dict):
            unknown = set(data) - set(cls.model_fields)
            if unknown:
                log.warning("ignoring unknown configuration keys: %s", ", ".join(sorted(unknown)))
        return data

    @field_validator("root", mode="before")
    @classmethod
    def _expand_root(cls, value: Any) -> Any:
        if value is None or value == "":
            return _default_root()
        return _expand(value)

    @field_validator("template", mode="before")
    @classmethod
    def _expand_template(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return _expand(value)

    @property
    def db_file(self) -> Path:
        return self.root / DATABASE_FILE

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in err['loc']) or 'config'}: {err['msg']}"
                for err in exc.errors()
            )
            raise ConfigError(f"invalid configuration: {problems}") from exc

    def to_dict(self) -> dict[str, Any]:
        return {
            "root": str(self.root),
            "template": str(self.template) if self.template else "",
            "link_sep": self.link_sep,
            "workers": self.workers,
        }


def _expand(value: Any) -> Any:
    # Anything else is left for the field type to reject
    if isinstance(value, (str, Path)):
        return expand_path(str(value))
    return value


def expand_path(path: str) -> Path:
    """Expand ``~`` and ``$VARS``; relative paths are relative to ``$HOME``."""
    expanded = Path(os.path.expandvars(os.path.expanduser(path)))
    if not expanded.is_absolute():
        expanded = Path.home() / expanded
    return expanded


def config_file() -> Path:
    """Where the configuration file is expected to be."""
    explicit = os.environ.get("SLIPBOX_CONFIG")
    if explicit:
        return Path(explicit)
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "slipbox" / "slipbox.yaml"
    return Path.home() / ".config" / "slipbox" / "slipbox.yaml"


def load_config(path: Path | str | None = None) -> Config:
    """Read (creating it if needed) the configuration file."""
    path = Path(path) if path else config_file()
    if not path.exists():
        cfg = Config()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(yaml.safe_dump(cfg.to_dict(), sort_keys=False), encoding="utf-8")
        except OSError as exc:
            log.warning("couldn't write default configuration to %s: %s", path, exc)
        else:
            log.info("wrote default configuration to %s", path)
    else:
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"can't read configuration {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"configuration {path} must be a mapping")
        cfg = Config.from_dict(data)

    root = os.environ.get("SLIPBOX_ROOT")
    if root:
        cfg.root = expand_path(root)
    return cfg

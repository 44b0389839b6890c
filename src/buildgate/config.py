"""Run configuration: the ``settings`` section of the policy file."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

import yaml

from buildgate.results.ledger import Severity
from buildgate.results.verdict import ExitCodes, validate_threshold

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when run settings are invalid."""


@dataclass(frozen=True)
class RunConfig:
    """Settings for one run, built once and passed explicitly.

    ``inspections`` of ``None`` selects every registered inspection.
    """

    threshold: Severity = Severity.VERIFY
    move_detection: bool = True
    jobs: int = 1
    inspections: tuple[str, ...] | None = None
    exclude: tuple[str, ...] = ()
    exit_codes: ExitCodes = field(default_factory=ExitCodes)

    def with_overrides(self, **overrides: Any) -> RunConfig:
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self


def _names(raw: object, key: str) -> tuple[str, ...]:
    if isinstance(raw, str):
        return tuple(n.strip() for n in raw.split(",") if n.strip())
    if isinstance(raw, list):
        return tuple(str(n) for n in raw)
    msg = f"settings.{key} must be a list or comma-separated string"
    raise ValueError(msg)


def parse_settings(data: object) -> RunConfig:
    """Build a RunConfig from a ``settings`` mapping (``None`` gives defaults).

    Raises ``ValueError`` on invalid values.
    """
    if data is None:
        return RunConfig()
    if not isinstance(data, dict):
        msg = "settings must be a mapping"
        raise ValueError(msg)

    defaults = RunConfig()
    kwargs: dict[str, Any] = {}

    if "threshold" in data:
        kwargs["threshold"] = validate_threshold(Severity.parse(str(data["threshold"])))

    if "move_detection" in data:
        move_detection = data["move_detection"]
        if not isinstance(move_detection, bool):
            msg = "settings.move_detection must be true or false"
            raise ValueError(msg)
        kwargs["move_detection"] = move_detection

    if "jobs" in data:
        jobs = data["jobs"]
        if isinstance(jobs, bool) or not isinstance(jobs, int) or jobs < 1:
            msg = "settings.jobs must be a positive integer"
            raise ValueError(msg)
        kwargs["jobs"] = jobs

    if data.get("inspections") is not None:
        kwargs["inspections"] = _names(data["inspections"], "inspections")
    if data.get("exclude") is not None:
        kwargs["exclude"] = _names(data["exclude"], "exclude")

    codes_raw = data.get("exit_codes")
    if codes_raw is not None:
        if not isinstance(codes_raw, dict):
            msg = "settings.exit_codes must be a mapping"
            raise ValueError(msg)
        unknown = set(codes_raw) - {"passed", "failed", "usage_error", "internal_error"}
        if unknown:
            msg = f"settings.exit_codes has unknown keys {sorted(unknown)}"
            raise ValueError(msg)
        kwargs["exit_codes"] = ExitCodes(**{k: int(v) for k, v in codes_raw.items()})

    return replace(defaults, **kwargs)


def load_config(config_path: Path | None) -> RunConfig:
    """Read run settings from a YAML file's ``settings`` section.

    A missing path or a file without ``settings`` gives the defaults.

    Raises
    ------
    ConfigError
        When the file is unreadable or a setting is invalid.
    """
    if config_path is None or not config_path.is_file():
        return RunConfig()

    try:
        with config_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        msg = f"Cannot read config {config_path}: {exc}"
        raise ConfigError(msg) from exc

    if data is None:
        return RunConfig()
    if not isinstance(data, dict):
        msg = f"Invalid config {config_path}: must be a YAML mapping"
        raise ConfigError(msg)

    try:
        config = parse_settings(data.get("settings"))
    except (ValueError, TypeError) as exc:
        msg = f"Invalid config {config_path}: {exc}"
        raise ConfigError(msg) from exc

    logger.debug("Run settings: %s", config)
    return config

"""
Configuration for LabLab stores and the participant runtime.

Defines LabSettings, a frozen dataclass carrying the document-store location plus the
retry policies used for scenario/wallet fetches and background progress writes.
Defaults are sourced from lablab.core.constants (the single source of truth).

Precedence
- environment (``LABLAB_*``) > TOML > defaults.
- TOML search order: ./lablab.toml (``[lablab]`` table or top-level keys), then
  ./pyproject.toml under ``[tool.lablab]``.

Import DAG discipline
- Depends only on stdlib and lablab.core.
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from lablab.core.constants import DEFAULT_WRITE_TIMEOUT_S
from lablab.core.policy import RetryPolicy

__all__ = ["LabSettings"]

logger = logging.getLogger(__name__)

_POLICY_KEYS = ("max_attempts", "base_delay_s", "max_delay_s", "attempt_timeout_s")


@dataclass(frozen=True)
class LabSettings:
    """
    Runtime settings for LabLab.

    Attributes:
        root_dir (str): Root of the JSON document store.
        fetch_retry (RetryPolicy): Policy for scenario/wallet fetches (attempts capped at 10).
        progress_retry (RetryPolicy): Policy for background progress-write retries.
        write_timeout_s (float): Upper bound on a single progress/survey write.

    Examples:
        >>> from lablab.io.config import LabSettings
        >>> LabSettings(root_dir="data").fetch_retry.max_attempts
        5
    """

    root_dir: str = "data"
    fetch_retry: RetryPolicy = field(default_factory=RetryPolicy)
    progress_retry: RetryPolicy = field(default_factory=RetryPolicy.for_progress_writes)
    write_timeout_s: float = DEFAULT_WRITE_TIMEOUT_S

    @classmethod
    def _apply_mapping(cls, base: LabSettings, cfg: dict[str, Any] | None) -> LabSettings:
        """Apply a loose config mapping onto LabSettings, returning a new instance."""
        if not isinstance(cfg, dict):
            return base

        s = base

        if "root_dir" in cfg and isinstance(cfg["root_dir"], str):
            s = replace(s, root_dir=cfg["root_dir"])

        if "write_timeout_s" in cfg:
            try:
                s = replace(s, write_timeout_s=float(cfg["write_timeout_s"]))
            except (TypeError, ValueError):
                logger.warning("ignoring invalid write_timeout_s=%r", cfg["write_timeout_s"])

        for name in ("fetch_retry", "progress_retry"):
            sub = cfg.get(name)
            if isinstance(sub, dict):
                s = replace(s, **{name: _apply_policy(getattr(s, name), sub, name)})

        return s

    @classmethod
    def from_env(cls, base: LabSettings | None = None, prefix: str = "LABLAB_") -> LabSettings:
        """
        Build LabSettings from environment variables. Precedence is env > base > defaults.

        Recognized variables:
            - LABLAB_ROOT_DIR
            - LABLAB_WRITE_TIMEOUT_S
            - LABLAB_FETCH_MAX_ATTEMPTS / _BASE_DELAY_S / _MAX_DELAY_S / _ATTEMPT_TIMEOUT_S
            - LABLAB_PROGRESS_MAX_ATTEMPTS / _BASE_DELAY_S / _MAX_DELAY_S / _ATTEMPT_TIMEOUT_S
        """
        s = base or cls()

        def get(name: str) -> str | None:
            return os.getenv(prefix + name)

        mapping: dict[str, Any] = {}
        v = get("ROOT_DIR")
        if v:
            mapping["root_dir"] = v
        v = get("WRITE_TIMEOUT_S")
        if v:
            mapping["write_timeout_s"] = v

        for env_group, name in (("FETCH", "fetch_retry"), ("PROGRESS", "progress_retry")):
            for key in _POLICY_KEYS:
                v = get(f"{env_group}_{key.upper()}")
                if v:
                    mapping.setdefault(name, {})[key] = v

        return cls._apply_mapping(s, mapping)

    @classmethod
    def from_toml(cls, path: str | os.PathLike[str] | None = None) -> LabSettings:
        """
        Build LabSettings from a TOML file.

        Search order when `path` is None:
            1) ./lablab.toml (with either a top-level [lablab] table or direct keys)
            2) ./pyproject.toml under [tool.lablab]

        Returns defaults if no file is present or none parses.
        """
        s = cls()

        def _load_toml(p: Path) -> dict[str, Any] | None:
            try:
                with p.open("rb") as fh:
                    return tomllib.load(fh)
            except (OSError, tomllib.TOMLDecodeError) as exc:
                logger.warning("could not read settings from %s: %s", p, exc)
                return None

        cand: list[Path] = []
        if path is not None:
            cand.append(Path(path))
        else:
            cand.append(Path.cwd() / "lablab.toml")
            cand.append(Path.cwd() / "pyproject.toml")

        cfg: dict[str, Any] | None = None
        for p in cand:
            if not p.exists():
                continue
            data = _load_toml(p)
            if not isinstance(data, dict):
                continue
            if p.name == "pyproject.toml":
                tool = data.get("tool", {})
                cfg = tool.get("lablab") if isinstance(tool, dict) else None
            elif isinstance(data.get("lablab"), dict):
                cfg = data["lablab"]
            else:
                cfg = data
            if cfg:
                break

        return cls._apply_mapping(s, cfg)

    @classmethod
    def load(cls, path: str | os.PathLike[str] | None = None) -> LabSettings:
        """
        Load LabSettings applying precedence: environment > TOML > defaults.

        Args:
            path: Optional explicit TOML path. If None, search lablab.toml then pyproject.toml.
        """
        s = cls.from_toml(path)
        return cls.from_env(base=s)


def _apply_policy(policy: RetryPolicy, cfg: dict[str, Any], label: str) -> RetryPolicy:
    changes: dict[str, Any] = {}
    for key in _POLICY_KEYS:
        if key not in cfg:
            continue
        try:
            changes[key] = int(cfg[key]) if key == "max_attempts" else float(cfg[key])
        except (TypeError, ValueError):
            logger.warning("ignoring invalid %s.%s=%r", label, key, cfg[key])
    # replace() re-runs __post_init__, so max_attempts stays capped.
    return replace(policy, **changes) if changes else policy

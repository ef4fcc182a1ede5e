"""fsmlens/cli/bootstrap.py — Dependency wiring. One place for concrete implementations."""
from __future__ import annotations
import os
from fsmlens.kernel.manager import HistoryManager
from fsmlens.logging_setup import configure_logging
from fsmlens.models.errors import ConfigError
from fsmlens.models.types import LensConfig

_TRUE = {"1", "true", "yes", "on"}


def load_config(**overrides: object) -> LensConfig:
    """Build LensConfig from defaults + FSMLENS_* env vars + explicit overrides."""
    kw: dict = {}
    _e = os.environ.get
    if _e("FSMLENS_STRICT"):    kw["strict"] = _e("FSMLENS_STRICT", "").strip().lower() in _TRUE
    if _e("FSMLENS_HISTORY_LIMIT"):
        try: kw["history_limit"] = int(_e("FSMLENS_HISTORY_LIMIT"))  # type: ignore
        except ValueError: pass
    if _e("FSMLENS_LOG_LEVEL"): kw["log_level"] = _e("FSMLENS_LOG_LEVEL")
    if _e("FSMLENS_LOG_PATH"):  kw["log_path"] = _e("FSMLENS_LOG_PATH")
    kw.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return LensConfig(**kw)
    except ValueError as e:
        raise ConfigError(str(e)) from e


def build_manager(config: LensConfig) -> HistoryManager:
    """Configure logging and return a fresh HistoryManager."""
    configure_logging(log_level=config.log_level, log_path=config.log_path)
    return HistoryManager(config)

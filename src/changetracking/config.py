"""
Tracking configuration.

TrackingConfig holds the defaults applied when as_trackable() or
as_trackable_collection() are called without explicit options.

Resolution order:
    tracking_config(...) override (contextvars, innermost wins)
    → process default (set_default_tracking_config)
    → TrackingConfig() static defaults

Usage:
    >>> with tracking_config(make_complex_properties_trackable=False):
    ...     order = as_trackable(Order())   # nested objects stay plain
"""
import contextvars
import dataclasses
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Generator, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackingConfig:
    """Defaults for new trackers and tracked collections."""
    make_complex_properties_trackable: bool = True
    make_collection_properties_trackable: bool = True
    # None means changetracking.ledger.default_comparer
    comparer: Optional[Callable[[Any, Any], bool]] = None
    # Re-raise element property changes as collection item_changed events
    raise_item_changed_events: bool = True


_default_config: TrackingConfig = TrackingConfig()

# Scoped override installed by tracking_config()
_config_override: contextvars.ContextVar = contextvars.ContextVar('tracking_config_override', default=None)


def set_default_tracking_config(config: TrackingConfig) -> None:
    """Replace the process-wide default configuration."""
    global _default_config
    if not isinstance(config, TrackingConfig):
        raise TypeError(f"Expected TrackingConfig, got {type(config).__name__}")
    _default_config = config
    logger.debug(f"Default tracking config set: {config}")


def get_default_tracking_config() -> TrackingConfig:
    """Process-wide default configuration (ignores scoped overrides)."""
    return _default_config


def get_tracking_config() -> TrackingConfig:
    """Configuration in effect for the current context."""
    override = _config_override.get()
    return override if override is not None else _default_config


@contextmanager
def tracking_config(**overrides: Any) -> Generator[TrackingConfig, None, None]:
    """Scope configuration overrides to a with-block.

    Overrides are merged into the configuration currently in effect, so
    nested blocks compose.
    """
    config = dataclasses.replace(get_tracking_config(), **overrides)
    token = _config_override.set(config)
    try:
        yield config
    finally:
        _config_override.reset(token)


def reset_default_tracking_config() -> None:
    """Restore static defaults. For testing only."""
    global _default_config
    _default_config = TrackingConfig()

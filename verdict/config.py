"""
Configuration for Verdict.

`VerdictConfig` is an immutable value. Entry points accept one explicitly;
when none is given they read the process-wide default at call time and
pass it down, so the evaluation algorithm itself never consults global
state.

Example:
    >>> from verdict.config import configure, get_config
    >>> configure(raise_on_deny=False)
    >>> get_config().raise_on_deny
    False
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from verdict.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerdictConfig:
    """
    Engine configuration.

    Attributes:
        raise_on_deny: Whether `authorize` raises NotAuthorizedError on
            denial (otherwise it returns the denied result).
        default_rule: Rule used when a caller does not name one.
        authorization_field_prefix: Prefix of exposed permission fields
            (`can_edit`).
    """

    raise_on_deny: bool = True
    default_rule: str = "show?"
    authorization_field_prefix: str = "can_"

    def __post_init__(self) -> None:
        if not isinstance(self.raise_on_deny, bool):
            raise ConfigurationError(
                config_key="raise_on_deny",
                expected="bool",
                received=self.raise_on_deny,
            )
        if not isinstance(self.default_rule, str) or not self.default_rule:
            raise ConfigurationError(
                config_key="default_rule",
                expected="non-empty string",
                received=self.default_rule,
            )
        if not isinstance(self.authorization_field_prefix, str):
            raise ConfigurationError(
                config_key="authorization_field_prefix",
                expected="string",
                received=self.authorization_field_prefix,
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> VerdictConfig:
        """
        Build a config from a mapping, rejecting unknown keys.

        Raises:
            ConfigurationError: On unknown keys or invalid values.
        """
        known = {f.name for f in dataclasses.fields(cls)}
        for key in data:
            if key not in known:
                raise ConfigurationError(
                    config_key=str(key),
                    expected=f"one of: {', '.join(sorted(known))}",
                )
        return cls(**dict(data))

    def replace(self, **changes: Any) -> VerdictConfig:
        """Return a copy with some options changed."""
        return self.from_dict({**self.to_dict(), **changes})

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return dataclasses.asdict(self)


_config = VerdictConfig()
_config_lock = threading.Lock()


def get_config() -> VerdictConfig:
    """Get the process-wide default configuration."""
    return _config


def configure(**options: Any) -> VerdictConfig:
    """
    Change the process-wide default configuration.

    Meant to be called once during application startup.
    """
    global _config
    with _config_lock:
        _config = _config.replace(**options)
        logger.debug(f"Verdict configured: {_config.to_dict()}")
        return _config


def reset_config() -> None:
    """Restore the default configuration. Primarily useful for testing."""
    global _config
    with _config_lock:
        _config = VerdictConfig()

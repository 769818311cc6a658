"""
Session configuration.

Defaults suit interactive use; every value can be overridden per session
or through ``FIELDCRYPT_*`` environment variables.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional


# Defaults
DEFAULT_BACKEND_TIMEOUT = 10.0  # seconds per backend call

ENV_BACKEND_TIMEOUT = "FIELDCRYPT_BACKEND_TIMEOUT"
ENV_FAIL_CLOSED = "FIELDCRYPT_FAIL_CLOSED"
ENV_TRANSPORT_URL = "FIELDCRYPT_TRANSPORT_URL"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")


def _parse_timeout(name: str, value: str) -> Optional[float]:
    lowered = value.strip().lower()
    if lowered in ("", "none", "off"):
        return None
    try:
        timeout = float(lowered)
    except ValueError:
        raise ValueError(f"{name} must be a number of seconds, got {value!r}") from None
    if timeout <= 0:
        raise ValueError(f"{name} must be positive, got {value!r}")
    return timeout


@dataclass
class SessionConfig:
    """
    Settings for an encryption session.

    Attributes:
        backend_timeout: Seconds allowed per backend call; None waits forever
        fail_closed: Turn environment advisories into hard errors
        transport_url: URL the tool is served from, checked for plain http
    """
    backend_timeout: Optional[float] = DEFAULT_BACKEND_TIMEOUT
    fail_closed: bool = False
    transport_url: Optional[str] = None

    def __post_init__(self):
        if self.backend_timeout is not None and self.backend_timeout <= 0:
            raise ValueError("backend_timeout must be positive or None")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'SessionConfig':
        """
        Build a configuration from environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ``

        Raises:
            ValueError: If a variable holds an invalid value
        """
        env = os.environ if environ is None else environ
        config = cls()
        if ENV_BACKEND_TIMEOUT in env:
            config.backend_timeout = _parse_timeout(ENV_BACKEND_TIMEOUT, env[ENV_BACKEND_TIMEOUT])
        if ENV_FAIL_CLOSED in env:
            config.fail_closed = _parse_bool(ENV_FAIL_CLOSED, env[ENV_FAIL_CLOSED])
        if env.get(ENV_TRANSPORT_URL):
            config.transport_url = env[ENV_TRANSPORT_URL]
        return config

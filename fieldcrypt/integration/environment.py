"""
Environment precondition checks.

These checks are advisory: by default they produce notifications and the
operation continues. A session configured with ``fail_closed=True`` raises
``EnvironmentPrecondition`` on the first advisory instead.
"""

import functools
import logging
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urlparse

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..config import SessionConfig
from .event_logger import Severity


logger = logging.getLogger(__name__)

INSECURE_TRANSPORT_MESSAGE = (
    "The encryption tool is not supported over http:// - please use https://"
)
UNSUPPORTED_BACKEND_MESSAGE = (
    "The encryption tool is not supported by this cryptography backend ({reason})"
)


@dataclass(frozen=True)
class Advisory:
    """A precondition that is not met."""
    severity: Severity
    message: str


def check_transport(url: Optional[str]) -> Optional[Advisory]:
    """Warn when the tool is served over plain http."""
    if not url:
        return None
    if urlparse(url).scheme.lower() == "http":
        return Advisory(Severity.INFO, INSECURE_TRANSPORT_MESSAGE)
    return None


@functools.lru_cache(maxsize=1)
def _exercise_backend() -> Optional[str]:
    """Exercise P-256 ECDH and AES-128-CTR once; return a reason on failure."""
    try:
        private_key = ec.generate_private_key(ec.SECP256R1())
        private_key.exchange(ec.ECDH(), private_key.public_key())
        encryptor = Cipher(algorithms.AES(bytes(16)), modes.CTR(bytes(16))).encryptor()
        encryptor.update(bytes(16))
        encryptor.finalize()
    except UnsupportedAlgorithm as exc:
        return str(exc) or type(exc).__name__
    return None


def check_backend() -> Optional[Advisory]:
    """Warn when the backend lacks P-256 ECDH or AES-CTR."""
    reason = _exercise_backend()
    if reason is None:
        return None
    logger.warning("Backend self-test failed: %s", reason)
    return Advisory(Severity.DANGER, UNSUPPORTED_BACKEND_MESSAGE.format(reason=reason))


def check_environment(config: SessionConfig) -> List[Advisory]:
    """
    Run all precondition checks.

    Args:
        config: Session configuration (supplies the transport URL)

    Returns:
        Advisories for every unmet precondition (empty when all is well)
    """
    advisories = []
    for advisory in (check_transport(config.transport_url), check_backend()):
        if advisory is not None:
            advisories.append(advisory)
    return advisories

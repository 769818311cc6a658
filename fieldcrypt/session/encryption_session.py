"""
Encryption Session Module

State machine that sequences key agreement, key derivation and field
encryption for one operator interaction.

States (each tagged with the epoch it was entered in):

    Idle ──select_mode(new)──────► AwaitingDeviceKey ──submit_device_public_key──► KeysReady
      ▲  ──select_mode(existing)─► AwaitingSymmetricKey ──submit_symmetric_key───► KeysReady
      │                                                                            │
      └────────────────────────────── reset() ◄───────────────── encrypt_field ◄───┘

- ``select_mode`` and ``reset`` wipe all key material and advance the epoch.
- A failed submission leaves the state untouched so the operator can retry.
- Backend calls run off the event loop, one after another, each bounded
  by ``SessionConfig.backend_timeout``.
- A result requested in an older epoch is dropped when it arrives.

Example:
    session = EncryptionSession(notify=print_banner)
    session.select_mode(Mode.GENERATE_NEW)
    ready = await session.submit_device_public_key(device_public_key_b64)
    # ready.server_public_key_base64 goes to the device
    encrypted_b64 = await session.encrypt_field("wifi-password")
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Type, Union

from ..config import SessionConfig
from ..core_crypto.codec import encode_base64, wipe
from ..core_crypto.errors import (
    CryptoBackendError,
    EnvironmentPrecondition,
    FieldCryptError,
    InvalidKeyFormat,
    InvalidKeyPoint,
    InvalidTransition,
)
from ..exchange.key_derivation import SymmetricKey, derive_symmetric_key, import_symmetric_key
from ..exchange.key_exchange import (
    KeyPair,
    derive_shared_secret,
    export_public_key_raw,
    generate_ephemeral_key_pair,
    import_device_public_key,
)
from ..fields.field_cipher import FieldEncryptor
from ..integration.environment import check_environment
from ..integration.event_logger import EventLogger, NotificationSink, OutputField


logger = logging.getLogger(__name__)

DEVICE_KEY_INVALID_MESSAGE = "The device public key is invalid. Please review it and try again."
ENCRYPTION_KEY_INVALID_MESSAGE = "The encryption key is invalid. Please review it and try again."


class Mode(Enum):
    """Which path populates the session's symmetric key."""
    GENERATE_NEW = "new"
    USE_EXISTING = "existing"

    @property
    def label(self) -> str:
        return {
            Mode.GENERATE_NEW: "Generate new encryption key",
            Mode.USE_EXISTING: "Use existing encryption key",
        }[self]


# ============================================================================
# States
# ============================================================================

@dataclass(frozen=True)
class Idle:
    epoch: int


@dataclass(frozen=True)
class AwaitingDeviceKey:
    epoch: int


@dataclass(frozen=True)
class AwaitingSymmetricKey:
    epoch: int


@dataclass(frozen=True)
class KeysReady:
    """
    Keys are available and fields can be encrypted.

    ``server_public_key_base64`` is only set for keys derived in this
    session (GENERATE_NEW); an imported key has no operator public key.
    """
    epoch: int
    mode: Mode
    key: SymmetricKey = field(repr=False)
    server_public_key_base64: Optional[str] = None

    @property
    def symmetric_key_base64(self) -> str:
        """The key in the form the operator stores for later reuse."""
        return self.key.to_base64()


SessionState = Union[Idle, AwaitingDeviceKey, AwaitingSymmetricKey, KeysReady]

KeyPairFactory = Callable[[], KeyPair]


@dataclass
class _Derivation:
    key: SymmetricKey
    server_public_raw: bytes
    device_public_raw: bytes


# ============================================================================
# Session
# ============================================================================

class EncryptionSession:
    """
    One operator session: choose a mode, obtain a key, encrypt fields.

    The session exclusively owns the active key. Every state change is
    made under a lock, so the session can be shared between threads;
    cryptographic work happens outside the lock.
    """

    def __init__(self, config: Optional[SessionConfig] = None,
                 notify: Optional[NotificationSink] = None,
                 event_logger: Optional[EventLogger] = None,
                 key_pair_factory: KeyPairFactory = generate_ephemeral_key_pair):
        """
        Initialize an idle session.

        Args:
            config: Session settings (defaults to SessionConfig())
            notify: Sink receiving (severity, message) operator notifications
            event_logger: Event log to record into (a fresh one if None)
            key_pair_factory: Source of the ephemeral key pair; override to
                reproduce a previous derivation
        """
        self._config = config or SessionConfig()
        self._events = event_logger if event_logger is not None else EventLogger()
        if notify is not None:
            self._events.add_sink(notify)
        self._key_pair_factory = key_pair_factory

        self._lock = threading.Lock()
        self._epoch = 0
        self._state: SessionState = Idle(0)
        self._encryptor: Optional[FieldEncryptor] = None
        self._last_encrypted: Optional[str] = None

        self._events.log_session_start(self._epoch)

    # ------------------------------------------------------------------ props

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def events(self) -> EventLogger:
        return self._events

    @property
    def mode(self) -> Optional[Mode]:
        """Selected mode, or None while idle."""
        state = self._state
        if isinstance(state, AwaitingDeviceKey):
            return Mode.GENERATE_NEW
        if isinstance(state, AwaitingSymmetricKey):
            return Mode.USE_EXISTING
        if isinstance(state, KeysReady):
            return state.mode
        return None

    @property
    def is_ready(self) -> bool:
        return isinstance(self._state, KeysReady)

    # ------------------------------------------------------------ transitions

    def _wipe_locked(self) -> None:
        """Zero all key material. Caller holds the lock."""
        if isinstance(self._state, KeysReady):
            self._state.key.wipe()
        if self._encryptor is not None:
            self._encryptor.close()
            self._encryptor = None
        self._last_encrypted = None

    def _enter_locked(self, state_type: Type) -> SessionState:
        self._wipe_locked()
        self._epoch += 1
        self._state = state_type(self._epoch)
        return self._state

    def select_mode(self, mode: Union[Mode, str]) -> SessionState:
        """
        Choose how the key will be obtained; discards any current keys.

        Args:
            mode: Mode or its value ("new" / "existing")

        Returns:
            The new awaiting state
        """
        mode = Mode(mode)
        target = AwaitingDeviceKey if mode is Mode.GENERATE_NEW else AwaitingSymmetricKey
        with self._lock:
            state = self._enter_locked(target)
        logger.debug("Mode %s selected, epoch %d", mode.value, state.epoch)
        self._events.log_mode_selected(state.epoch, mode.value)
        return state

    def reset(self) -> SessionState:
        """Wipe all key material and return to Idle."""
        with self._lock:
            state = self._enter_locked(Idle)
        logger.debug("Session reset, epoch %d", state.epoch)
        self._events.log_reset(state.epoch)
        return state

    def _require(self, state_type: Type, operation: str) -> int:
        with self._lock:
            if not isinstance(self._state, state_type):
                raise InvalidTransition(
                    f"{operation} is not allowed in state {type(self._state).__name__}"
                )
            return self._epoch

    def _is_current(self, epoch: int, state_type: Type) -> bool:
        """Caller holds the lock."""
        return self._epoch == epoch and isinstance(self._state, state_type)

    # ---------------------------------------------------------------- backend

    async def _run_backend(self, func: Callable, *args):
        """Run one blocking backend call in a worker thread with the timeout."""
        call = asyncio.to_thread(func, *args)
        timeout = self._config.backend_timeout
        if timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError:
            name = getattr(func, '__name__', repr(func))
            raise CryptoBackendError(
                f"{name} did not complete within {timeout}s"
            ) from None

    async def _check_environment(self, epoch: int) -> None:
        advisories = await self._run_backend(check_environment, self._config)
        for advisory in advisories:
            self._events.log_advisory(epoch, advisory.severity, advisory.message)
            if self._config.fail_closed:
                raise EnvironmentPrecondition(advisory.message, advisory.message)

    async def _derive_from_device_key(self, device_public_key_b64: str) -> _Derivation:
        """import -> generate ephemeral pair -> ECDH -> HMAC key derivation."""
        device_key = await self._run_backend(import_device_public_key, device_public_key_b64)
        key_pair = await self._run_backend(self._key_pair_factory)
        shared_secret = None
        try:
            shared_secret = bytearray(
                await self._run_backend(derive_shared_secret, device_key, key_pair.private_key)
            )
            key = await self._run_backend(derive_symmetric_key, shared_secret)
            server_public_raw = export_public_key_raw(key_pair.public_key)
        finally:
            if shared_secret is not None:
                wipe(shared_secret)
            key_pair.discard_private()
        return _Derivation(key, server_public_raw, export_public_key_raw(device_key))

    def _fail(self, epoch: int, state_type: Type, operation: str,
              exc: FieldCryptError) -> bool:
        """
        Record a failure. Returns False when it belongs to a superseded
        epoch and must be dropped silently.
        """
        with self._lock:
            current = self._is_current(epoch, state_type)
        if not current:
            self._events.log_stale_result(epoch, self._epoch, operation)
            return False
        logger.debug("%s failed: %s", operation, exc)
        self._events.log_failure(epoch, operation, exc.kind.value, exc.user_message)
        return True

    # ------------------------------------------------------------- operations

    async def submit_device_public_key(self, device_public_key_b64: str) -> Optional[KeysReady]:
        """
        Derive a new key from the device public key (GENERATE_NEW mode).

        Args:
            device_public_key_b64: Base64 of the device's raw 64-byte point

        Returns:
            The KeysReady state, or None if the session moved on meanwhile

        Raises:
            InvalidTransition: If the session is not awaiting a device key
            InvalidKeyFormat, InvalidKeyPoint, KeyAgreementError,
            CryptoBackendError, EnvironmentPrecondition: On failure; the
                session stays in AwaitingDeviceKey
        """
        operation = "submit_device_public_key"
        epoch = self._require(AwaitingDeviceKey, operation)
        try:
            await self._check_environment(epoch)
            derivation = await self._derive_from_device_key(device_public_key_b64)
        except FieldCryptError as exc:
            if isinstance(exc, (InvalidKeyFormat, InvalidKeyPoint)):
                exc.user_message = DEVICE_KEY_INVALID_MESSAGE
            if self._fail(epoch, AwaitingDeviceKey, operation, exc):
                raise
            return None

        with self._lock:
            applied = self._is_current(epoch, AwaitingDeviceKey)
            if applied:
                state = KeysReady(
                    epoch=epoch,
                    mode=Mode.GENERATE_NEW,
                    key=derivation.key,
                    server_public_key_base64=encode_base64(derivation.server_public_raw),
                )
                self._encryptor = FieldEncryptor(derivation.key)
                self._state = state
        if not applied:
            derivation.key.wipe()
            self._events.log_stale_result(epoch, self._epoch, operation)
            return None

        self._events.log_keys_derived(epoch, derivation.server_public_raw,
                                      derivation.device_public_raw)
        return state

    async def submit_symmetric_key(self, symmetric_key_b64: str) -> Optional[KeysReady]:
        """
        Load a previously derived key (USE_EXISTING mode).

        Returns:
            The KeysReady state, or None if the session moved on meanwhile

        Raises:
            InvalidTransition: If the session is not awaiting a symmetric key
            InvalidKeyFormat: If the key is not base64 of 16 bytes; the
                session stays in AwaitingSymmetricKey
        """
        operation = "submit_symmetric_key"
        epoch = self._require(AwaitingSymmetricKey, operation)
        try:
            await self._check_environment(epoch)
            key = await self._run_backend(import_symmetric_key, symmetric_key_b64)
        except FieldCryptError as exc:
            if isinstance(exc, InvalidKeyFormat):
                exc.user_message = ENCRYPTION_KEY_INVALID_MESSAGE
            if self._fail(epoch, AwaitingSymmetricKey, operation, exc):
                raise
            return None

        with self._lock:
            applied = self._is_current(epoch, AwaitingSymmetricKey)
            if applied:
                state = KeysReady(epoch=epoch, mode=Mode.USE_EXISTING, key=key)
                self._encryptor = FieldEncryptor(key)
                self._state = state
        if not applied:
            key.wipe()
            self._events.log_stale_result(epoch, self._epoch, operation)
            return None

        self._events.log_key_imported(epoch)
        return state

    async def encrypt_field(self, plaintext: Union[str, bytes]) -> Optional[str]:
        """
        Encrypt one field value with the active key.

        Safe to call concurrently; every call draws its own IV.

        Args:
            plaintext: Field value (text is UTF-8 encoded), may be empty

        Returns:
            base64(IV || ciphertext), or None if the session was reset or
            switched mode before the encryption finished

        Raises:
            InvalidTransition: If no key is ready
            CipherBackendFailure: If the backend rejects the operation
        """
        operation = "encrypt_field"
        with self._lock:
            if not isinstance(self._state, KeysReady):
                raise InvalidTransition(
                    f"{operation} is not allowed in state {type(self._state).__name__}"
                )
            epoch = self._epoch
            encryptor = self._encryptor

        try:
            encrypted = await self._run_backend(encryptor.encrypt, plaintext)
        except FieldCryptError as exc:
            if self._fail(epoch, KeysReady, operation, exc):
                raise
            return None

        encrypted_b64 = encrypted.to_base64()
        with self._lock:
            applied = self._is_current(epoch, KeysReady)
            if applied:
                self._last_encrypted = encrypted_b64
        if not applied:
            self._events.log_stale_result(epoch, self._epoch, operation)
            return None

        self._events.log_field_encrypted(epoch, len(encrypted.ciphertext))
        return encrypted_b64

    # ---------------------------------------------------------------- display

    def outputs(self) -> List[OutputField]:
        """Values the presentation layer should display right now."""
        with self._lock:
            state = self._state
            last_encrypted = self._last_encrypted
        if not isinstance(state, KeysReady):
            return []

        fields = []
        if state.mode is Mode.GENERATE_NEW:
            fields.append(OutputField("Server public key", state.server_public_key_base64))
            fields.append(OutputField("Encryption key", state.symmetric_key_base64, masked=True))
        if last_encrypted is not None:
            fields.append(OutputField("Field value (encrypted)", last_encrypted))
        return fields

    # -------------------------------------------------------------- lifecycle

    def __enter__(self) -> 'EncryptionSession':
        return self

    def __exit__(self, *exc_info) -> None:
        self.reset()

    async def __aenter__(self) -> 'EncryptionSession':
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.reset()

    def __repr__(self) -> str:
        return f"EncryptionSession(state={type(self._state).__name__}, epoch={self._epoch})"

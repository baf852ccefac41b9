"""
Session Manager for WhatsApp Bridge

Owns the lifecycle of the single WhatsApp session: start, QR and pairing-code
authentication, credential persistence, reconnection, stop and credential wipe.
"""

import asyncio
import functools
import inspect
import random
import sys
from dataclasses import replace
from enum import Enum
from typing import Callable, Optional, Set

from .events import (
    ChallengeIssued,
    ConnectionClosed,
    ConnectionOpened,
    CredentialsUpdated,
    TransportEvent,
)
from .phone import normalize_phone_number
from .scheduler import ReconnectScheduler
from .session import Session, SessionStatus, StatusSnapshot
from ..output_handling.qr_renderer import render_ascii
from ..storage.base import CredentialStore
from ..transport.base import SocketHandle, Transport
from ..utils.config import Config
from ..utils.error_handler import (
    AlreadyRunningError,
    BridgeError,
    ErrorHandler,
    NotInitializedError,
    NotRunningError,
    PairingFailedError,
    StorageError,
    TransportError,
)
from ..utils.logging_setup import get_logger

logger = get_logger('session_manager')

# Upper bound for the credential existence check behind status queries
STATUS_STORE_TIMEOUT = 5.0


class SessionEvent(Enum):
    """Notifications published to the control surface"""
    STARTING = "starting"
    QR_ISSUED = "qr_issued"
    PAIRING_CODE_ISSUED = "pairing_code_issued"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    LOGGED_OUT = "logged_out"
    STOPPED = "stopped"
    AUTH_DELETED = "auth_deleted"
    FAILED = "failed"


class SessionManager:
    """Manages the WhatsApp session and its lifecycle"""

    def __init__(self, config: Config, transport: Transport,
                 credential_store: CredentialStore,
                 error_handler: Optional[ErrorHandler] = None):
        self.config = config
        self.transport = transport
        self.credential_store = credential_store
        self.error_handler = error_handler or ErrorHandler()

        self.session = Session(session_id=config.whatsapp.session_id)
        self._handle: Optional[SocketHandle] = None
        self._lock = asyncio.Lock()
        self._scheduler = ReconnectScheduler(lambda: self.session.generation)
        self._callback_tasks: Set[asyncio.Task] = set()

        # Callback for session notifications
        self.session_event_callback: Optional[Callable[[SessionEvent, Session], None]] = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def status(self) -> SessionStatus:
        return self.session.status

    @property
    def can_stop(self) -> bool:
        return self._handle is not None or self._scheduler.pending

    @property
    def reconnect_pending(self) -> bool:
        return self._scheduler.pending

    @property
    def active_handle(self) -> Optional[SocketHandle]:
        """Handle usable for sending, or None outside the connected state"""
        handle = self._handle
        if self.session.status != SessionStatus.CONNECTED or handle is None or not handle.is_open:
            return None
        return handle

    @property
    def handle_pid(self) -> Optional[int]:
        return self._handle.pid if self._handle is not None else None

    async def get_status(self) -> StatusSnapshot:
        """Snapshot of the session; never waits on the transport"""
        auth_exists = await self._check_auth_exists()
        session = self.session
        return StatusSnapshot(
            status=session.status,
            client_info=replace(session.client_info),
            qr_code=session.qr_code,
            pairing_code=session.pairing_code,
            can_start=session.can_start(),
            can_stop=self.can_stop,
            can_delete_auth=auth_exists,
            auth_exists=auth_exists
        )

    async def _check_auth_exists(self) -> bool:
        try:
            return await asyncio.wait_for(
                self.credential_store.exists_credentials(), STATUS_STORE_TIMEOUT
            )
        except asyncio.TimeoutError:
            logger.warning("Credential store did not answer in time, reporting no credentials")
        except StorageError as e:
            logger.warning(f"Could not check stored credentials: {e}")
        return False

    # ------------------------------------------------------------------
    # Control operations
    # ------------------------------------------------------------------

    async def start(self):
        """Start the WhatsApp connection, resuming from stored credentials if present"""
        async with self._lock:
            if not self.session.can_start():
                raise AlreadyRunningError(
                    f"WhatsApp is already started ({self.session.status.value}). Stop it first."
                )

            logger.info(f"Starting WhatsApp session {self.session.session_id}")
            self._scheduler.cancel()
            generation = self._new_generation()
            self.session.reconnect_attempts = 0
            self.session.last_error = None
            self.session.set_status(SessionStatus.STARTING)
            self._notify(SessionEvent.STARTING)

            try:
                await self._open_handle(generation)
            except Exception as e:
                self.error_handler.handle_error(e, {'operation': 'start'}, self.session.session_id)
                self._fail(f"Failed to start WhatsApp connection: {e}")
                if isinstance(e, BridgeError):
                    raise
                raise TransportError(f"Failed to start WhatsApp connection: {e}") from e

    async def stop(self):
        """Stop the connection and any pending reconnect; credentials are kept"""
        async with self._lock:
            if not self.can_stop:
                raise NotRunningError("WhatsApp is not started")

            logger.info(f"Stopping WhatsApp session {self.session.session_id}")
            await self._release()
            self.session.reconnect_attempts = 0
            self.session.set_status(SessionStatus.STOPPED)
            self._notify(SessionEvent.STOPPED)

    async def delete_auth(self):
        """Stop anything running and erase stored credentials; safe to repeat"""
        async with self._lock:
            if self.can_stop:
                logger.info("Stopping WhatsApp before deleting credentials")
            await self._release()

            try:
                await self.credential_store.delete_credentials()
                logger.info(f"Credentials deleted from {self.credential_store.describe()}")
            except StorageError as e:
                self.error_handler.handle_error(e, {'operation': 'delete_auth'}, self.session.session_id)

            self.session.reconnect_attempts = 0
            self.session.last_error = None
            self.session.set_status(SessionStatus.AUTH_DELETED)
            self._notify(SessionEvent.AUTH_DELETED)

    async def request_pairing_code(self, destination: str) -> str:
        """Request a pairing code as an alternative to scanning the QR challenge"""
        phone_number = normalize_phone_number(destination, self.config.whatsapp.jid_suffix)

        async with self._lock:
            handle = self._handle
            if handle is None:
                raise NotInitializedError("WhatsApp socket not initialized")
            if self.session.status == SessionStatus.CONNECTED:
                raise AlreadyRunningError("WhatsApp is already authenticated")

            generation = self.session.generation
            try:
                code = await handle.request_pairing_code(phone_number)
            except BridgeError as e:
                raise PairingFailedError(f"Failed to generate pairing code: {e.message}") from e
            except Exception as e:
                raise PairingFailedError(f"Failed to generate pairing code: {e}") from e

            if not code:
                raise PairingFailedError("Failed to generate pairing code: empty reply")
            if generation != self.session.generation:
                raise NotInitializedError("WhatsApp connection was reset while requesting the code")
            if self.session.status == SessionStatus.CONNECTED:
                return code

            self.session.issue_pairing_code(code)
            logger.info(f"Pairing code generated for {phone_number}")
            self._notify(SessionEvent.PAIRING_CODE_ISSUED)
            return code

    async def shutdown(self):
        """Release the connection on process exit without touching credentials"""
        async with self._lock:
            await self._release()
            if self.session.is_active():
                self.session.set_status(SessionStatus.STOPPED)
        await self.credential_store.close()

    # ------------------------------------------------------------------
    # Transport handling
    # ------------------------------------------------------------------

    def _new_generation(self) -> int:
        self.session.generation += 1
        return self.session.generation

    async def _open_handle(self, generation: int):
        """Open a transport handle bound to the given generation"""
        credentials = await self.credential_store.load_credentials()
        if credentials:
            logger.info("Resuming with stored credentials")
        else:
            logger.info("No stored credentials, a QR code or pairing code will be required")

        handle = await self.transport.open(
            self.session.session_id,
            credentials,
            functools.partial(self._on_transport_event, generation)
        )

        if generation != self.session.generation:
            # The connection closed before open() returned
            logger.info("Discarding transport handle of a superseded generation")
            await self._close_handle(handle)
            return

        self._handle = handle

    async def _close_handle(self, handle: SocketHandle):
        try:
            await handle.close()
        except Exception as e:
            self.error_handler.handle_error(e, {'operation': 'close'}, self.session.session_id)

    async def _release(self):
        """Invalidate the current generation and drop the transport handle"""
        self._new_generation()
        self._scheduler.cancel()
        handle, self._handle = self._handle, None
        if handle is not None:
            await self._close_handle(handle)

    async def _on_transport_event(self, generation: int, event: TransportEvent):
        """Single state transition function for events from the transport"""
        if generation != self.session.generation:
            logger.debug(f"Ignoring {type(event).__name__} from superseded generation {generation}")
            return

        if isinstance(event, ChallengeIssued):
            self._handle_challenge(event)
        elif isinstance(event, CredentialsUpdated):
            await self._handle_credentials(event)
        elif isinstance(event, ConnectionOpened):
            self._handle_opened(event)
        elif isinstance(event, ConnectionClosed):
            await self._handle_closed(event)
        else:
            logger.warning(f"Unknown transport event: {event!r}")

    def _handle_challenge(self, event: ChallengeIssued):
        status = self.session.status
        if status in (SessionStatus.AWAITING_PAIRING, SessionStatus.CONNECTED):
            logger.debug(f"Ignoring QR challenge while {status.value}")
            return

        logger.info("QR code received - scan with WhatsApp to authenticate")
        self.session.issue_qr(event.qr)
        if self.config.whatsapp.print_qr_in_terminal:
            sys.stdout.write(render_ascii(event.qr))
            sys.stdout.flush()
        self._notify(SessionEvent.QR_ISSUED)

    async def _handle_credentials(self, event: CredentialsUpdated):
        try:
            await self.credential_store.save_credentials(event.update)
        except StorageError as e:
            self.error_handler.handle_error(e, {'operation': 'save_credentials'}, self.session.session_id)
            raise
        logger.debug(f"Credentials updated ({len(event.update)} keys)")
        self.session.update_activity()

    def _handle_opened(self, event: ConnectionOpened):
        # A retry for this generation may still be inside transport.open();
        # it must be left to assign the handle.
        self.session.mark_connected(event.phone_number)
        logger.info(f"WhatsApp connected as {self.session.client_info.phone_number}")
        self._notify(SessionEvent.CONNECTED)

    async def _handle_closed(self, event: ConnectionClosed):
        logger.info(f"WhatsApp disconnected: {event.reason} {event.message}".rstrip())

        handle, self._handle = self._handle, None
        self._new_generation()
        if handle is not None:
            await self._close_handle(handle)

        if event.is_logout:
            logger.info("Logged out, authenticate again with a QR code or pairing code")
            self.session.reconnect_attempts = 0
            self.session.set_status(SessionStatus.DISCONNECTED)
            self._notify(SessionEvent.LOGGED_OUT)
            return

        self.error_handler.handle_error(
            TransportError(f"Connection closed ({event.reason}): {event.message}"),
            {'status_code': event.status_code},
            self.session.session_id
        )
        self._schedule_reconnect()

    def _schedule_reconnect(self):
        whatsapp = self.config.whatsapp
        attempts = self.session.reconnect_attempts
        if whatsapp.max_reconnect_attempts and attempts >= whatsapp.max_reconnect_attempts:
            self._fail(f"Gave up reconnecting after {attempts} attempts")
            return

        delay = whatsapp.reconnect_delay
        if whatsapp.reconnect_jitter > 0:
            delay += random.uniform(0, whatsapp.reconnect_jitter)

        self.session.set_status(SessionStatus.RECONNECTING)
        logger.info(f"Attempting to reconnect in {delay:.1f}s")
        self._scheduler.schedule(delay, self.session.generation, self._reconnect)
        self._notify(SessionEvent.RECONNECTING)

    async def _reconnect(self, generation: int):
        async with self._lock:
            if generation != self.session.generation or self.session.status != SessionStatus.RECONNECTING:
                return

            self.session.reconnect_attempts += 1
            logger.info(f"Reconnect attempt {self.session.reconnect_attempts}")
            try:
                await self._open_handle(generation)
            except Exception as e:
                self.error_handler.handle_error(e, {'operation': 'reconnect'}, self.session.session_id)
                if generation == self.session.generation:
                    self._new_generation()
                    self._schedule_reconnect()

    def _fail(self, message: str):
        self._scheduler.cancel()
        self.session.set_status(SessionStatus.ERROR)
        self.session.last_error = message
        logger.error(message)
        self._notify(SessionEvent.FAILED)

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def set_session_event_callback(self, callback: Callable[[SessionEvent, Session], None]):
        """Set callback for session notifications (plain function or coroutine function)"""
        self.session_event_callback = callback

    def _notify(self, event: SessionEvent):
        if not self.session_event_callback:
            return
        try:
            result = self.session_event_callback(event, self.session)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(self._await_callback(result))
                self._callback_tasks.add(task)
                task.add_done_callback(self._callback_tasks.discard)
        except Exception as e:
            logger.error(f"Error in session event callback: {e}")

    async def _await_callback(self, result):
        try:
            await result
        except Exception as e:
            logger.error(f"Error in session event callback: {e}")

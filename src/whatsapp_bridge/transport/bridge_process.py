"""
WhatsApp Bridge Process

Runs the Baileys sidecar as a child process and speaks its newline-delimited
JSON protocol.

stdin (Python -> bridge):
    {"type": "init", "sessionId": "...", "credentials": {...}}
    {"type": "request", "id": 1, "method": "requestPairingCode", "params": {"phoneNumber": "..."}}
    {"type": "request", "id": 2, "method": "sendMessage", "params": {"jid": "...", "text": "..."}}
    {"type": "ack", "id": 7, "ok": true, "error": null}

stdout (bridge -> Python):
    {"type": "qr", "qr": "..."}
    {"type": "creds.update", "id": 7, "update": {"creds": {...}, "pre-key-1": null}}
    {"type": "connection.open", "user": {"id": "15551234567:12@s.whatsapp.net"}}
    {"type": "connection.close", "statusCode": 401, "message": "..."}
    {"type": "response", "id": 1, "ok": true, "result": {"code": "ABCD1234"}}
    {"type": "log", "level": "info", "message": "..."}

stderr is forwarded to the log.
"""

import asyncio
import itertools
import json
import logging
import os
from typing import Any, Dict, List, Optional

from ..core.events import (
    ConnectionClosed,
    CredentialsUpdated,
    DisconnectReason,
    TransportEvent,
    parse_event,
)
from ..utils.config import WhatsAppConfig
from ..utils.error_handler import TransportError
from ..utils.logging_setup import get_logger
from .base import EventCallback, SentMessage, SocketHandle, Transport

logger = get_logger('bridge_process')

# stdout lines can carry whole credential updates
STREAM_LIMIT = 16 * 1024 * 1024
TERMINATE_TIMEOUT = 5.0


class BridgeProcess(SocketHandle):
    """Controls one bridge sidecar process and its I/O"""

    def __init__(self, command: List[str], on_event: EventCallback,
                 working_directory: Optional[str] = None,
                 request_timeout: float = 30.0):
        self.command = command
        self.working_directory = working_directory
        self.request_timeout = request_timeout
        self.process: Optional[asyncio.subprocess.Process] = None
        self.event_callback: Optional[EventCallback] = on_event
        self._stdout_task: Optional[asyncio.Task] = None
        self._stderr_task: Optional[asyncio.Task] = None
        self._pending: Dict[int, asyncio.Future] = {}
        self._request_ids = itertools.count(1)
        self._write_lock = asyncio.Lock()
        self._closing = False

    @property
    def is_open(self) -> bool:
        return (
            not self._closing
            and self.process is not None
            and self.process.returncode is None
        )

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process is not None else None

    async def start_process(self, session_id: str, credentials: Optional[Dict[str, Any]]):
        """Launch the bridge and hand it the session's credentials"""
        logger.info(f"Starting WhatsApp bridge for session {session_id}")
        logger.debug(f"Command: {' '.join(self.command)}")

        try:
            self.process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.working_directory,
                env=dict(os.environ, WHATSAPP_SESSION_ID=session_id),
                limit=STREAM_LIMIT
            )
        except FileNotFoundError as e:
            raise TransportError(f"Bridge command not found: {self.command[0]}") from e
        except OSError as e:
            raise TransportError(f"Failed to start bridge process: {e}") from e

        self._stdout_task = asyncio.create_task(self._monitor_stdout())
        self._stderr_task = asyncio.create_task(self._monitor_stderr())

        try:
            await self._write({
                "type": "init",
                "sessionId": session_id,
                "credentials": credentials or {},
            })
        except TransportError:
            await self.close()
            raise

        logger.info(f"WhatsApp bridge started with PID {self.process.pid}")

    async def _monitor_stdout(self):
        """Read protocol messages until the bridge closes stdout"""
        try:
            while True:
                line = await self.process.stdout.readline()
                if not line:
                    break
                text = line.decode('utf-8', errors='replace').strip()
                if not text:
                    continue
                try:
                    payload = json.loads(text)
                except ValueError:
                    logger.debug(f"Bridge stdout: {text}")
                    continue
                if not isinstance(payload, dict):
                    logger.debug(f"Ignoring non-object bridge message: {text}")
                    continue
                await self._dispatch(payload)
        except (asyncio.LimitOverrunError, ValueError) as e:
            logger.error(f"Error reading bridge output: {e}")

        if self._closing:
            return

        returncode = await self.process.wait()
        logger.warning(f"WhatsApp bridge exited with code {returncode}")
        self._fail_pending(TransportError(f"Bridge process exited with code {returncode}"))
        await self._emit(ConnectionClosed(
            status_code=DisconnectReason.CONNECTION_LOST,
            message=f"bridge process exited with code {returncode}"
        ))

    async def _monitor_stderr(self):
        """Forward bridge stderr to the log"""
        while True:
            line = await self.process.stderr.readline()
            if not line:
                break
            text = line.decode('utf-8', errors='replace').rstrip()
            if text:
                logger.debug(f"Bridge stderr: {text}")

    async def _dispatch(self, payload: Dict[str, Any]):
        kind = payload.get("type")

        if kind == "response":
            self._resolve(payload)
            return

        if kind == "log":
            level = getattr(logging, str(payload.get("level", "info")).upper(), logging.INFO)
            logger.log(level, f"Bridge: {payload.get('message', '')}")
            return

        try:
            event = parse_event(payload)
        except ValueError as e:
            logger.warning(f"Malformed bridge message: {e}")
            return

        if event is None:
            logger.debug(f"Ignoring bridge message of type {kind!r}")
            return

        if isinstance(event, CredentialsUpdated):
            await self._persist_credentials(event, payload.get("id"))
        else:
            try:
                await self._emit(event)
            except Exception as e:
                logger.error(f"Error handling {kind} from bridge: {e}")

    async def _persist_credentials(self, event: CredentialsUpdated, ack_id):
        """Save a credential update and tell the bridge whether it is durable"""
        ok, error = True, None
        try:
            await self._emit(event)
        except Exception as e:
            ok, error = False, str(e)
            logger.error(f"Credential update not persisted: {e}")

        if ack_id is None or not self.is_open:
            return
        try:
            await self._write({"type": "ack", "id": ack_id, "ok": ok, "error": error})
        except TransportError as e:
            logger.warning(f"Could not acknowledge credential update: {e}")

    async def _emit(self, event: TransportEvent):
        callback = self.event_callback
        if callback is not None:
            await callback(event)

    def _resolve(self, payload: Dict[str, Any]):
        future = self._pending.get(payload.get("id"))
        if future is None or future.done():
            logger.debug(f"Response for unknown request {payload.get('id')!r}")
            return
        if payload.get("ok"):
            future.set_result(payload.get("result") or {})
        else:
            future.set_exception(TransportError(payload.get("error") or "Bridge request failed"))

    def _fail_pending(self, error: Exception):
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()

    async def _write(self, message: Dict[str, Any]):
        if self.process is None or self.process.stdin is None:
            raise TransportError("Bridge process is not running")

        data = (json.dumps(message) + "\n").encode('utf-8')
        async with self._write_lock:
            try:
                self.process.stdin.write(data)
                await self.process.stdin.drain()
            except (BrokenPipeError, ConnectionResetError) as e:
                raise TransportError("Bridge stdin is closed") from e

    async def request(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Send a request to the bridge and wait for its response"""
        if not self.is_open:
            raise TransportError("Bridge process is not running")

        request_id = next(self._request_ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._write({"type": "request", "id": request_id, "method": method, "params": params})
            return await asyncio.wait_for(future, self.request_timeout)
        except asyncio.TimeoutError as e:
            raise TransportError(f"Bridge did not answer {method} within {self.request_timeout}s") from e
        finally:
            self._pending.pop(request_id, None)

    async def request_pairing_code(self, phone_number: str) -> str:
        result = await self.request("requestPairingCode", {"phoneNumber": phone_number})
        code = result.get("code")
        if not code:
            raise TransportError("Bridge returned no pairing code")
        return str(code)

    async def send_text(self, jid: str, text: str) -> SentMessage:
        result = await self.request("sendMessage", {"jid": jid, "text": text})
        message_id = result.get("messageId")
        if not message_id:
            raise TransportError("Bridge returned no message id")
        return SentMessage(message_id=str(message_id))

    def get_process_info(self) -> dict:
        """Get process information"""
        if not self.process:
            return {"status": "not_started", "pid": None}

        if self.process.returncode is None:
            return {"status": "running", "pid": self.process.pid}
        return {"status": "terminated", "pid": self.process.pid, "exit_code": self.process.returncode}

    async def close(self):
        """Detach listeners and terminate the bridge process"""
        if self._closing:
            return
        self._closing = True
        self.event_callback = None
        self._fail_pending(TransportError("Bridge connection closed"))

        process = self.process
        if process is not None and process.returncode is None:
            logger.info(f"Terminating WhatsApp bridge (PID: {process.pid})")
            try:
                if process.stdin is not None:
                    process.stdin.close()
                process.terminate()
                try:
                    await asyncio.wait_for(process.wait(), TERMINATE_TIMEOUT)
                except asyncio.TimeoutError:
                    logger.warning("WhatsApp bridge did not terminate gracefully, forcing kill")
                    process.kill()
                    await process.wait()
            except ProcessLookupError:
                pass

        current = asyncio.current_task()
        for task in (self._stdout_task, self._stderr_task):
            if task is not None and task is not current and not task.done():
                task.cancel()


class BridgeTransport(Transport):
    """Opens WhatsApp connections through the bridge sidecar"""

    def __init__(self, config: WhatsAppConfig):
        self.config = config

    async def open(self, session_id: str, credentials: Optional[Dict[str, Any]],
                   on_event: EventCallback) -> BridgeProcess:
        process = BridgeProcess(
            command=self.config.bridge_command,
            on_event=on_event,
            working_directory=self.config.working_directory,
            request_timeout=self.config.request_timeout
        )
        await process.start_process(session_id, credentials)
        return process

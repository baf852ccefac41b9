"""
Bridge Process Integration Tests

Runs BridgeProcess against a small Python stand-in for the Node sidecar that
speaks the same JSON-lines protocol.
"""

import asyncio
import sys
from pathlib import Path

import pytest

from whatsapp_bridge.core.events import (
    ChallengeIssued,
    ConnectionClosed,
    ConnectionOpened,
    CredentialsUpdated,
    DisconnectReason,
)
from whatsapp_bridge.transport.bridge_process import BridgeProcess, BridgeTransport
from whatsapp_bridge.utils.config import WhatsAppConfig
from whatsapp_bridge.utils.error_handler import StorageError, TransportError

pytestmark = pytest.mark.integration

FAKE_BRIDGE = Path(__file__).parent / "fake_bridge.py"


@pytest.fixture
def sidecar():
    return FAKE_BRIDGE


class EventRecorder:
    """Collects transport events, optionally failing credential saves"""

    def __init__(self, fail_credentials=False):
        self.events = []
        self.fail_credentials = fail_credentials

    async def __call__(self, event):
        self.events.append(event)
        if isinstance(event, CredentialsUpdated) and self.fail_credentials:
            raise StorageError("disk full")

    async def wait_for(self, event_type, timeout=5.0):
        async def poll():
            while not any(isinstance(e, event_type) for e in self.events):
                await asyncio.sleep(0.01)
        await asyncio.wait_for(poll(), timeout)
        return next(e for e in self.events if isinstance(e, event_type))


async def start_bridge(sidecar, recorder, mode="normal", credentials=None, request_timeout=5.0):
    process = BridgeProcess(
        [sys.executable, str(sidecar), mode],
        on_event=recorder,
        request_timeout=request_timeout
    )
    await process.start_process("shop", credentials)
    return process


class TestBridgeProcess:
    """Test BridgeProcess against a protocol-compatible sidecar"""

    @pytest.mark.asyncio
    async def test_authentication_flow(self, sidecar):
        recorder = EventRecorder()
        process = await start_bridge(sidecar, recorder, credentials={"creds": {}, "pre-key-1": {}})
        try:
            opened = await recorder.wait_for(ConnectionOpened)

            assert [type(e) for e in recorder.events] == [
                ChallengeIssued, CredentialsUpdated, ConnectionOpened
            ]
            assert recorder.events[0].qr == "QR:shop:2"
            assert recorder.events[1].update == {"creds": {"registered": True}}
            assert opened.phone_number == "15551234567"
            assert process.is_open
            assert process.pid is not None
        finally:
            await process.close()

    @pytest.mark.asyncio
    async def test_failed_credential_save_is_reported_to_bridge(self, sidecar):
        recorder = EventRecorder(fail_credentials=True)
        process = await start_bridge(sidecar, recorder)
        try:
            closed = await recorder.wait_for(ConnectionClosed)

            assert closed.status_code == 500
            assert "disk full" in closed.message
            assert not any(isinstance(e, ConnectionOpened) for e in recorder.events)
        finally:
            await process.close()

    @pytest.mark.asyncio
    async def test_requests(self, sidecar):
        recorder = EventRecorder()
        process = await start_bridge(sidecar, recorder)
        try:
            await recorder.wait_for(ConnectionOpened)

            assert await process.request_pairing_code("15550001111") == "CODE1111"

            sent = await process.send_text("15550001111@s.whatsapp.net", "hello")
            assert sent.message_id.startswith("3EB0")

            with pytest.raises(TransportError, match="not-authorized"):
                await process.send_text("fail@s.whatsapp.net", "hello")
        finally:
            await process.close()

    @pytest.mark.asyncio
    async def test_request_timeout(self, sidecar):
        recorder = EventRecorder()
        process = await start_bridge(sidecar, recorder, mode="silent", request_timeout=0.2)
        try:
            with pytest.raises(TransportError, match="did not answer"):
                await process.request_pairing_code("15550001111")
        finally:
            await process.close()

    @pytest.mark.asyncio
    async def test_process_exit_is_a_disconnect(self, sidecar):
        recorder = EventRecorder()
        process = await start_bridge(sidecar, recorder, mode="exit")
        try:
            closed = await recorder.wait_for(ConnectionClosed)

            assert closed.status_code == DisconnectReason.CONNECTION_LOST
            assert not closed.is_logout
            assert "code 3" in closed.message
            assert not process.is_open
            assert process.get_process_info()["exit_code"] == 3
        finally:
            await process.close()

    @pytest.mark.asyncio
    async def test_close_terminates_process(self, sidecar):
        recorder = EventRecorder()
        process = await start_bridge(sidecar, recorder)
        await recorder.wait_for(ConnectionOpened)

        await process.close()

        assert not process.is_open
        assert process.get_process_info()["status"] == "terminated"
        with pytest.raises(TransportError):
            await process.send_text("15550001111@s.whatsapp.net", "hello")

        # No disconnect is reported for a deliberate close
        await asyncio.sleep(0.1)
        assert not any(isinstance(e, ConnectionClosed) for e in recorder.events)

    @pytest.mark.asyncio
    async def test_missing_command(self):
        process = BridgeProcess(["definitely-not-a-real-bridge-binary"], on_event=EventRecorder())

        with pytest.raises(TransportError, match="Bridge command not found"):
            await process.start_process("shop", None)

        assert process.get_process_info()["status"] == "not_started"


class TestBridgeTransport:
    """Test BridgeTransport configuration wiring"""

    @pytest.mark.asyncio
    async def test_open(self, sidecar):
        config = WhatsAppConfig(
            bridge_command=[sys.executable, str(sidecar), "normal"],
            request_timeout=5.0
        )
        recorder = EventRecorder()

        handle = await BridgeTransport(config).open("default", None, recorder)
        try:
            await recorder.wait_for(ConnectionOpened)
            assert recorder.events[0].qr == "QR:default:0"
        finally:
            await handle.close()


if __name__ == "__main__":
    pytest.main([__file__])

"""
Node Bridge Integration Tests

Runs the real whatsapp-bridge/bridge.js under node, with Baileys replaced by
the small module in node_stubs/, to check the sidecar's side of the
credential acknowledgement protocol.
"""

import asyncio
import shutil
from pathlib import Path

import pytest

from whatsapp_bridge.core.session import SessionStatus
from whatsapp_bridge.core.session_manager import SessionManager
from whatsapp_bridge.transport.bridge_process import BridgeTransport

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(shutil.which("node") is None, reason="node is not installed"),
]

BRIDGE_JS = Path(__file__).parents[2] / "whatsapp-bridge" / "bridge.js"
NODE_STUBS = Path(__file__).parent / "node_stubs"


@pytest.fixture
def bridge_script(tmp_path):
    """Copy bridge.js next to a node_modules holding the stubbed packages"""
    shutil.copytree(NODE_STUBS, tmp_path / "node_modules")
    script = tmp_path / "bridge.js"
    shutil.copy(BRIDGE_JS, script)
    return script


@pytest.fixture
async def manager(config, store, bridge_script):
    config.whatsapp.bridge_command = ["node", str(bridge_script)]
    config.whatsapp.request_timeout = 5.0
    config.whatsapp.reconnect_delay = 0.05
    manager = SessionManager(config, BridgeTransport(config.whatsapp), store)
    yield manager
    await manager.shutdown()


async def wait_until(predicate, timeout=10.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.01)
    await asyncio.wait_for(poll(), timeout)


def error_count(manager, category):
    return manager.error_handler.get_error_stats()['errors_by_category'][category]


class TestNodeBridge:
    """Test the Node sidecar against the session manager"""

    @pytest.mark.asyncio
    async def test_authenticate_then_resume(self, manager, store):
        await manager.start()
        await wait_until(lambda: manager.status == SessionStatus.CONNECTED)

        assert manager.session.client_info.phone_number == "15551234567"
        assert store.records["creds"]["registered"] is True
        assert store.records["pre-key-1"] == {"public": "stub-pre-key"}

        await manager.stop()
        await manager.start()
        await wait_until(lambda: manager.status == SessionStatus.CONNECTED)

        assert manager.session.qr_code is None
        assert error_count(manager, 'transport') == 0

    @pytest.mark.asyncio
    async def test_failed_save_closes_and_reconnects(self, manager, store):
        store.fail_save = True

        await manager.start()
        await wait_until(lambda: error_count(manager, 'transport') >= 1)

        assert error_count(manager, 'storage') >= 1
        assert manager.status in (SessionStatus.RECONNECTING, SessionStatus.AWAITING_SCAN)
        assert manager.session.client_info.phone_number is None
        closes = [
            e for e in manager.error_handler.get_recent_errors(50)
            if e.context.get('status_code') == 500
        ]
        assert "Credential update was not persisted: disk full" in closes[0].message

        store.fail_save = False
        await wait_until(lambda: manager.status == SessionStatus.CONNECTED)

        assert store.records["creds"]["registered"] is True
        assert "pre-key-1" in store.records

#!/usr/bin/env python3
"""
WhatsApp Bridge - Main Entry Point

Single-session WhatsApp connection manager and message dispatcher,
controlled from a Discord channel.
"""

import asyncio
import argparse
import shutil
import sys
from pathlib import Path
from typing import Optional

from whatsapp_bridge import __version__
from whatsapp_bridge.core.dispatcher import MessageDispatcher
from whatsapp_bridge.core.session_manager import SessionManager
from whatsapp_bridge.discord_bot.bot import WhatsAppBridgeBot
from whatsapp_bridge.storage import create_credential_store
from whatsapp_bridge.transport.bridge_process import BridgeTransport
from whatsapp_bridge.utils.config import Config
from whatsapp_bridge.utils.error_handler import ErrorHandler
from whatsapp_bridge.utils.logging_setup import get_logger, parse_size, setup_logging
from whatsapp_bridge.utils.performance_monitor import HealthMonitor

DEFAULT_CONFIG_PATH = "config/whatsapp_config.json"

logger = get_logger('main')


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate configuration, exiting with a hint on failure"""
    config_file = Path(config_path or DEFAULT_CONFIG_PATH)
    if not config_file.exists():
        print(f"❌ Configuration file not found: {config_file}")
        print("📖 Copy config/whatsapp_config.example.json and fill in your Discord settings.")
        sys.exit(1)

    try:
        config = Config.load_from_file(config_file)
        config.validate()
        return config
    except (ValueError, OSError) as e:
        print(f"❌ Failed to load configuration: {e}")
        print("📖 Please check your configuration file and environment variables.")
        sys.exit(1)


def startup_checks(config: Config) -> bool:
    """Perform startup checks"""
    print("🔍 Performing startup checks...")

    executable = config.whatsapp.bridge_command[0]
    if not shutil.which(executable) and not Path(executable).exists():
        print(f"❌ Bridge command '{executable}' not found in PATH")
        print("🔧 Install Node.js and the WhatsApp bridge script dependencies")
        return False

    work_dir = config.whatsapp.working_directory
    if work_dir and not Path(work_dir).is_dir():
        print(f"❌ Bridge working directory does not exist: {work_dir}")
        return False

    if config.storage.backend == "file":
        auth_dir = Path(config.storage.auth_dir)
        if not auth_dir.exists():
            print(f"🔧 Creating credential directory: {auth_dir}")
            auth_dir.mkdir(parents=True, exist_ok=True)

    print("✅ Startup checks completed")
    return True


class WhatsAppBridgeApp:
    """Main WhatsApp Bridge Application"""

    def __init__(self, config: Config):
        self.config = config
        self.error_handler = ErrorHandler()
        self.session_manager: Optional[SessionManager] = None
        self.discord_bot: Optional[WhatsAppBridgeBot] = None
        self.running = False

    def build(self):
        """Wire the session manager, dispatcher and Discord bot together"""
        session_id = self.config.whatsapp.session_id

        store = create_credential_store(self.config.storage, session_id)
        logger.info(f"📦 Credential store: {store.describe()}")

        self.session_manager = SessionManager(
            self.config,
            BridgeTransport(self.config.whatsapp),
            store,
            error_handler=self.error_handler
        )
        dispatcher = MessageDispatcher(self.session_manager)

        self.discord_bot = WhatsAppBridgeBot(
            session_manager=self.session_manager,
            dispatcher=dispatcher,
            config=self.config,
            health_monitor=HealthMonitor(self.session_manager)
        )

    async def start(self) -> None:
        """Start WhatsApp Bridge application"""
        logger.info("🚀 Starting WhatsApp Bridge...")

        if self.discord_bot is None:
            self.build()

        self.running = True
        logger.info("✅ WhatsApp Bridge started successfully")
        print("🎉 WhatsApp Bridge is now running!")
        print(f"🔗 Discord server: {self.config.discord.guild_id}")
        print(f"📢 Control channel: {self.config.discord.channel_id}")
        print("📱 Use /wa-start in the control channel to connect WhatsApp")
        print("🛑 Press Ctrl+C to stop")

        # Blocks until the bot is closed
        await self.discord_bot.start(self.config.discord.token)

    async def stop(self) -> None:
        """Stop WhatsApp Bridge application"""
        if not self.running:
            return

        logger.info("🛑 Stopping WhatsApp Bridge...")
        self.running = False

        if self.session_manager:
            logger.info("📋 Releasing WhatsApp session...")
            await self.session_manager.shutdown()

        if self.discord_bot and not self.discord_bot.is_closed():
            logger.info("🤖 Stopping Discord bot...")
            await self.discord_bot.close()

        logger.info("✅ WhatsApp Bridge stopped successfully")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="WhatsApp Bridge - WhatsApp session manager controlled from Discord"
    )
    parser.add_argument(
        "--config", "-c",
        help=f"Configuration file path (default: {DEFAULT_CONFIG_PATH})",
        default=None
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"WhatsApp Bridge {__version__}"
    )
    return parser.parse_args(argv)


async def main(argv=None) -> None:
    """Main entry point"""
    args = parse_args(argv)
    config = load_config(args.config)

    setup_logging(
        level=config.logging.level,
        log_file=config.logging.file,
        max_bytes=parse_size(config.logging.max_size),
        backup_count=config.logging.backup_count,
        session_id=config.whatsapp.session_id
    )

    if not startup_checks(config):
        sys.exit(1)

    app = WhatsAppBridgeApp(config)

    try:
        await app.start()
    except asyncio.CancelledError:
        logger.info("🛑 Received interrupt signal")
        print("\n🛑 Shutting down WhatsApp Bridge...")
    finally:
        await app.stop()
        print("👋 WhatsApp Bridge stopped")


def run():
    """Console script entry point"""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")


if __name__ == "__main__":
    run()

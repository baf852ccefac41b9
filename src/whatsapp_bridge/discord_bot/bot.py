"""
Discord Bot for WhatsApp Bridge

Operator control surface: start, stop, pair, wipe credentials, check status
and send messages from a Discord channel.
"""

import asyncio
import io
from typing import Optional, Tuple

import discord
from discord.ext import commands

from ..core.dispatcher import MessageDispatcher
from ..core.session import Session, StatusSnapshot
from ..core.session_manager import SessionEvent, SessionManager
from ..output_handling.qr_renderer import render_png
from ..output_handling.status_formatter import StatusFormatter
from ..utils.config import Config
from ..utils.error_handler import BridgeError
from ..utils.logging_setup import get_logger
from ..utils.performance_monitor import HealthMonitor

logger = get_logger('discord_bot')

QR_FILENAME = "whatsapp-qr.png"

# Status replies fall back to a "starting" placeholder past this
STATUS_TIMEOUT = 10.0

Notice = Tuple[discord.Embed, Optional[discord.File]]


def qr_attachment(qr: str) -> discord.File:
    """PNG attachment for a QR challenge"""
    return discord.File(io.BytesIO(render_png(qr)), filename=QR_FILENAME)


class WhatsAppBridgeBot(commands.Bot):
    """Discord bot driving the WhatsApp session manager"""

    def __init__(self, session_manager: SessionManager, dispatcher: MessageDispatcher,
                 config: Config, health_monitor: Optional[HealthMonitor] = None):
        intents = discord.Intents.default()
        intents.message_content = True

        super().__init__(
            command_prefix='/',
            intents=intents,
            help_command=None
        )

        self.session_manager = session_manager
        self.dispatcher = dispatcher
        self.config = config
        self.health_monitor = health_monitor or HealthMonitor(session_manager)
        self.formatter = StatusFormatter()

        # Only the first QR of each connection attempt is posted
        self._qr_posted_generation: Optional[int] = None

        self.session_manager.set_session_event_callback(self._handle_session_event)

        self.add_commands()

    def add_commands(self):
        """Add all Discord commands"""

        @self.command(name='wa-status')
        async def status_command(ctx: commands.Context):
            """Show WhatsApp session status"""
            await self._show_status(ctx)

        @self.command(name='wa-start')
        async def start_command(ctx: commands.Context):
            """Start the WhatsApp connection"""
            await self._start_whatsapp(ctx)

        @self.command(name='wa-stop')
        async def stop_command(ctx: commands.Context):
            """Stop the WhatsApp connection"""
            await self._stop_whatsapp(ctx)

        @self.command(name='wa-pair')
        async def pair_command(ctx: commands.Context, phone_number: str):
            """Request a pairing code for a phone number"""
            await self._request_pairing_code(ctx, phone_number)

        @self.command(name='wa-delete-auth')
        async def delete_auth_command(ctx: commands.Context):
            """Delete stored WhatsApp credentials"""
            await self._delete_auth(ctx)

        @self.command(name='wa-send')
        async def send_command(ctx: commands.Context, phone_number: str, *, message: str):
            """Send a WhatsApp text message"""
            await self._send_message(ctx, phone_number, message)

        @self.command(name='wa-health')
        async def health_command(ctx: commands.Context):
            """Show bridge health"""
            await self._show_health(ctx)

        @self.command(name='help')
        async def help_command(ctx: commands.Context):
            """Show help information"""
            await self._show_help(ctx)

    async def on_ready(self):
        """Called when bot is ready"""
        logger.info(f'{self.user} has connected to Discord!')
        logger.info(f'Bot is in {len(self.guilds)} guilds')

        activity = discord.Activity(
            type=discord.ActivityType.watching,
            name="the WhatsApp bridge"
        )
        await self.change_presence(activity=activity)

    async def on_message(self, message: discord.Message):
        """Handle incoming messages"""
        if message.author == self.user:
            return

        if message.channel.id != self.config.discord.channel_id:
            return

        if message.content.startswith('/'):
            await self.process_commands(message)

    # ------------------------------------------------------------------
    # Command handlers
    # ------------------------------------------------------------------

    async def _show_status(self, ctx: commands.Context):
        try:
            snapshot = await asyncio.wait_for(self.session_manager.get_status(), STATUS_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning("Status query timed out, reporting starting")
            snapshot = StatusSnapshot.starting_placeholder()
        embed = self.formatter.status_embed(snapshot)

        if snapshot.qr_code:
            embed.set_image(url=f"attachment://{QR_FILENAME}")
            await ctx.send(embed=embed, file=qr_attachment(snapshot.qr_code))
        else:
            await ctx.send(embed=embed)

    async def _start_whatsapp(self, ctx: commands.Context):
        try:
            await self.session_manager.start()
        except BridgeError as e:
            await self._send_error(ctx, e)
            return

        embed = discord.Embed(
            title="🚀 WhatsApp Starting",
            description="Connection started. A QR code will be posted here if authentication is needed.",
            color=discord.Color.blue()
        )
        await ctx.send(embed=embed)

    async def _stop_whatsapp(self, ctx: commands.Context):
        try:
            await self.session_manager.stop()
        except BridgeError as e:
            await self._send_error(ctx, e)
            return

        embed = discord.Embed(
            title="🛑 WhatsApp Stopped",
            description="Connection stopped. Stored credentials were kept.",
            color=discord.Color.dark_grey()
        )
        await ctx.send(embed=embed)

    async def _request_pairing_code(self, ctx: commands.Context, phone_number: str):
        try:
            code = await self.session_manager.request_pairing_code(phone_number)
        except BridgeError as e:
            await self._send_error(ctx, e)
            return

        await ctx.send(embed=self.formatter.pairing_embed(code))

    async def _delete_auth(self, ctx: commands.Context):
        await self.session_manager.delete_auth()

        embed = discord.Embed(
            title="🗑️ Credentials Deleted",
            description="WhatsApp will need to be authenticated again.",
            color=discord.Color.dark_grey()
        )
        await ctx.send(embed=embed)

    async def _send_message(self, ctx: commands.Context, phone_number: str, message: str):
        try:
            result = await self.dispatcher.send_message(phone_number, message)
        except BridgeError as e:
            await self._send_error(ctx, e)
            return

        await ctx.send(embed=self.formatter.send_result_embed(
            phone_number, result.message_id, result.timestamp
        ))

    async def _show_health(self, ctx: commands.Context):
        report = self.health_monitor.check()
        await ctx.send(embed=self.formatter.health_embed(report))

    async def _show_help(self, ctx: commands.Context):
        embed = discord.Embed(
            title="🤖 WhatsApp Bridge Help",
            description="Control the WhatsApp session from Discord",
            color=discord.Color.gold()
        )

        commands_text = """
        `/wa-status` - Show connection status (and QR code while waiting for a scan)
        `/wa-start` - Start the WhatsApp connection
        `/wa-stop` - Stop the connection, keeping credentials
        `/wa-pair <phone>` - Get a pairing code instead of scanning the QR code
        `/wa-delete-auth` - Delete stored credentials
        `/wa-send <phone> <message>` - Send a text message
        `/wa-health` - Show bridge health
        `/help` - Show this help message
        """
        embed.add_field(name="Commands", value=commands_text, inline=False)

        usage_text = """
        1. Start the connection with `/wa-start`
        2. Scan the posted QR code, or use `/wa-pair <phone>`
        3. Send messages with `/wa-send` once connected
        """
        embed.add_field(name="Usage", value=usage_text, inline=False)

        await ctx.send(embed=embed)

    async def _send_error(self, ctx: commands.Context, error: BridgeError):
        await ctx.send(embed=self.formatter.error_embed(error))

    # ------------------------------------------------------------------
    # Session notifications
    # ------------------------------------------------------------------

    def _handle_session_event(self, event: SessionEvent, session: Session):
        """Build the notice now, post it asynchronously"""
        notice = self._build_notice(event, session)
        if notice is None:
            return None
        return self._post_notice(*notice)

    def _build_notice(self, event: SessionEvent, session: Session) -> Optional[Notice]:
        if event == SessionEvent.QR_ISSUED:
            if self._qr_posted_generation == session.generation or not session.qr_code:
                return None
            self._qr_posted_generation = session.generation
            embed = self.formatter.notice_embed(
                "🔐 Scan to Link WhatsApp",
                session,
                "Open WhatsApp > Linked Devices > Link a Device and scan this code."
            )
            embed.set_image(url=f"attachment://{QR_FILENAME}")
            return embed, qr_attachment(session.qr_code)

        if event == SessionEvent.PAIRING_CODE_ISSUED and session.pairing_code:
            return self.formatter.pairing_embed(session.pairing_code), None

        if event == SessionEvent.CONNECTED:
            phone = session.client_info.phone_number or "unknown number"
            return self.formatter.notice_embed("✅ WhatsApp Connected", session, f"Linked as {phone}"), None

        if event == SessionEvent.RECONNECTING:
            return self.formatter.notice_embed(
                "🔄 WhatsApp Reconnecting", session, "Connection lost, retrying with stored credentials."
            ), None

        if event == SessionEvent.LOGGED_OUT:
            return self.formatter.notice_embed(
                "🚪 WhatsApp Logged Out", session, "Run `/wa-start` and authenticate again."
            ), None

        if event == SessionEvent.FAILED:
            return self.formatter.notice_embed("❌ WhatsApp Failed", session), None

        return None

    async def _post_notice(self, embed: discord.Embed, file: Optional[discord.File]):
        channel = self.get_channel(self.config.discord.channel_id)
        if channel is None:
            logger.debug("Control channel not available, notice dropped")
            return

        try:
            if file is not None:
                await channel.send(embed=embed, file=file)
            else:
                await channel.send(embed=embed)
        except discord.errors.HTTPException as e:
            logger.error(f"Failed to post session notice to Discord: {e}")

    async def on_command_error(self, ctx: commands.Context, error: commands.CommandError):
        """Handle command errors"""
        if isinstance(error, commands.CommandNotFound):
            await ctx.send("❌ Unknown command. Use `/help` for available commands.")
        elif isinstance(error, commands.MissingRequiredArgument):
            await ctx.send(f"❌ Missing required argument: `{error.param.name}`")
        elif isinstance(error, commands.BadArgument):
            await ctx.send(f"❌ Invalid argument: {error}")
        else:
            logger.error(f"Unhandled command error: {error}")

"""
Discord Status Formatter for WhatsApp Bridge

Builds Discord embeds for status snapshots, session notifications, send
results, health reports and errors.
"""

import re
from typing import Optional

import discord

from ..core.session import Session, SessionStatus, StatusSnapshot
from ..utils.error_handler import BridgeError, ErrorSeverity
from ..utils.performance_monitor import HealthReport

# Discord limits
MAX_EMBED_FIELD_VALUE = 1024


STATUS_STYLE = {
    SessionStatus.IDLE: ("⏸️", discord.Color.light_grey()),
    SessionStatus.STARTING: ("🚀", discord.Color.blue()),
    SessionStatus.AWAITING_SCAN: ("🔐", discord.Color.gold()),
    SessionStatus.AWAITING_PAIRING: ("🔢", discord.Color.gold()),
    SessionStatus.CONNECTED: ("✅", discord.Color.green()),
    SessionStatus.RECONNECTING: ("🔄", discord.Color.orange()),
    SessionStatus.DISCONNECTED: ("🚪", discord.Color.dark_grey()),
    SessionStatus.STOPPED: ("🛑", discord.Color.dark_grey()),
    SessionStatus.AUTH_DELETED: ("🗑️", discord.Color.dark_grey()),
    SessionStatus.ERROR: ("❌", discord.Color.red()),
}

SEVERITY_COLORS = {
    ErrorSeverity.LOW: discord.Color.orange(),
    ErrorSeverity.MEDIUM: discord.Color.red(),
    ErrorSeverity.HIGH: discord.Color.red(),
    ErrorSeverity.CRITICAL: discord.Color.dark_red(),
}


def _error_title(error: BridgeError) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", " ", type(error).__name__)


def _yes_no(value: bool) -> str:
    return "✅" if value else "❌"


def _status_title(status: SessionStatus) -> str:
    emoji, _ = STATUS_STYLE.get(status, ("❔", discord.Color.default()))
    return f"{emoji} {status.value.replace('_', ' ').title()}"


class StatusFormatter:
    """Formats bridge state for Discord"""

    @staticmethod
    def status_embed(snapshot: StatusSnapshot) -> discord.Embed:
        """Embed for a GetStatus snapshot"""
        _, color = STATUS_STYLE.get(snapshot.status, ("", discord.Color.default()))
        embed = discord.Embed(
            title=f"📊 WhatsApp: {_status_title(snapshot.status)}",
            color=color,
            timestamp=snapshot.timestamp
        )

        info = snapshot.client_info
        embed.add_field(name="Connected", value=_yes_no(info.is_connected), inline=True)
        embed.add_field(name="Authenticated", value=_yes_no(info.is_authenticated), inline=True)
        embed.add_field(name="Phone Number", value=info.phone_number or "n/a", inline=True)

        embed.add_field(name="Can Start", value=_yes_no(snapshot.can_start), inline=True)
        embed.add_field(name="Can Stop", value=_yes_no(snapshot.can_stop), inline=True)
        embed.add_field(name="Stored Credentials", value=_yes_no(snapshot.auth_exists), inline=True)

        if snapshot.pairing_code:
            embed.add_field(name="Pairing Code", value=f"`{snapshot.pairing_code}`", inline=False)
        if snapshot.qr_code:
            embed.add_field(
                name="QR Code",
                value="Waiting for scan. Use `/wa-status` again for a fresh image.",
                inline=False
            )

        return embed

    @staticmethod
    def notice_embed(title: str, session: Session,
                     description: Optional[str] = None) -> discord.Embed:
        """Embed for a session notification"""
        _, color = STATUS_STYLE.get(session.status, ("", discord.Color.default()))
        embed = discord.Embed(title=title, description=description, color=color)
        embed.add_field(name="Status", value=_status_title(session.status), inline=True)
        embed.add_field(name="Session", value=f"`{session.session_id}`", inline=True)
        if session.status == SessionStatus.RECONNECTING and session.reconnect_attempts:
            embed.add_field(name="Attempts", value=str(session.reconnect_attempts), inline=True)
        if session.last_error:
            embed.add_field(
                name="Last Error",
                value=session.last_error[:MAX_EMBED_FIELD_VALUE],
                inline=False
            )
        return embed

    @staticmethod
    def pairing_embed(code: str) -> discord.Embed:
        embed = discord.Embed(
            title="🔢 Pairing Code",
            description=f"**`{code}`**",
            color=discord.Color.gold()
        )
        embed.add_field(
            name="How to link",
            value="Enter this code in WhatsApp: Settings > Linked Devices > Link Device",
            inline=False
        )
        return embed

    @staticmethod
    def send_result_embed(destination: str, message_id: str, timestamp) -> discord.Embed:
        embed = discord.Embed(
            title="📨 Message Sent",
            color=discord.Color.green(),
            timestamp=timestamp
        )
        embed.add_field(name="To", value=destination, inline=True)
        embed.add_field(name="Message ID", value=f"`{message_id}`", inline=True)
        return embed

    @staticmethod
    def health_embed(report: HealthReport) -> discord.Embed:
        healthy = report.status == "healthy"
        embed = discord.Embed(
            title=f"{'💚' if healthy else '🟠'} Bridge Health: {report.status.title()}",
            color=discord.Color.green() if healthy else discord.Color.orange()
        )
        embed.add_field(name="WhatsApp", value=report.whatsapp, inline=True)
        if report.last_activity is not None:
            embed.add_field(
                name="Last Activity",
                value=discord.utils.format_dt(report.last_activity, 'R'),
                inline=True
            )

        for name, metrics in (("Service", report.service), ("Bridge Process", report.bridge)):
            if metrics is None:
                embed.add_field(name=name, value="not running", inline=True)
                continue
            embed.add_field(
                name=name,
                value=(
                    f"PID {metrics.pid}\n"
                    f"CPU {metrics.cpu_percent:.1f}%\n"
                    f"RAM {metrics.memory_mb:.1f} MB\n"
                    f"Up {int(metrics.uptime_seconds)}s"
                ),
                inline=True
            )

        embed.add_field(
            name="Errors Recorded",
            value=str(report.errors.get('total_errors', 0)),
            inline=True
        )
        if report.recent_errors:
            lines = [f"`{e.category.value}` {e.message}" for e in reversed(report.recent_errors)]
            embed.add_field(
                name="Recent Errors",
                value="\n".join(lines)[:MAX_EMBED_FIELD_VALUE],
                inline=False
            )
        return embed

    @staticmethod
    def error_embed(error: BridgeError) -> discord.Embed:
        embed = discord.Embed(
            title=f"❌ {_error_title(error)}",
            description=error.message[:MAX_EMBED_FIELD_VALUE],
            color=SEVERITY_COLORS.get(error.severity, discord.Color.red())
        )
        embed.add_field(name="Category", value=error.category.value.title(), inline=True)
        return embed

"""
Configuration management for WhatsApp Bridge

Handles loading and validation of configuration from JSON files and environment variables.
"""

import json
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .logging_setup import parse_level, parse_size


STORAGE_BACKENDS = ("file", "mongodb")


@dataclass
class DiscordConfig:
    """Discord control surface configuration"""
    token: str
    guild_id: int
    channel_id: int


@dataclass
class WhatsAppConfig:
    """WhatsApp session and bridge process configuration"""
    session_id: str = "default"
    bridge_command: List[str] = field(
        default_factory=lambda: ["node", "whatsapp-bridge/bridge.js"]
    )
    working_directory: Optional[str] = None
    jid_suffix: str = "@s.whatsapp.net"
    reconnect_delay: float = 5.0
    max_reconnect_attempts: int = 0  # 0 keeps retrying
    reconnect_jitter: float = 0.0
    request_timeout: float = 30.0
    print_qr_in_terminal: bool = True


@dataclass
class StorageConfig:
    """Credential store configuration"""
    backend: str = "file"
    auth_dir: str = "auth_info_baileys"
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_database: str = "whatsapp_bridge"
    mongo_collection: str = "auth_state"


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "INFO"
    file: str = "whatsapp_bridge.log"
    max_size: str = "10MB"
    backup_count: int = 5


def _parse_command(value) -> List[str]:
    if isinstance(value, str):
        return shlex.split(value)
    return [str(part) for part in value]


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    """Main configuration class"""
    discord: DiscordConfig
    whatsapp: WhatsAppConfig = field(default_factory=WhatsAppConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load_from_file(cls, config_path: Path) -> 'Config':
        """Load configuration from JSON file with environment variable override"""

        # Load environment variables from .env file if it exists
        env_file = config_path.parent / ".env"
        if env_file.exists():
            load_dotenv(env_file)

        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> 'Config':
        """Build configuration from a parsed dictionary, applying environment overrides"""
        discord_data = data.get('discord', {})
        whatsapp_data = data.get('whatsapp', {})
        storage_data = data.get('storage', {})
        logging_data = data.get('logging', {})

        wa_defaults = WhatsAppConfig()
        storage_defaults = StorageConfig()
        logging_defaults = LoggingConfig()

        discord_token = os.getenv('DISCORD_BOT_TOKEN', discord_data.get('token', ''))
        if discord_token == "YOUR_DISCORD_BOT_TOKEN":
            raise ValueError(
                "Discord bot token not configured. Set DISCORD_BOT_TOKEN environment variable "
                "or update config.json"
            )

        discord_config = DiscordConfig(
            token=discord_token,
            guild_id=int(os.getenv('DISCORD_GUILD_ID', discord_data.get('guild_id', 0))),
            channel_id=int(os.getenv('DISCORD_CHANNEL_ID', discord_data.get('channel_id', 0)))
        )

        whatsapp_config = WhatsAppConfig(
            session_id=os.getenv(
                'WHATSAPP_SESSION_ID', whatsapp_data.get('session_id', wa_defaults.session_id)
            ),
            bridge_command=_parse_command(os.getenv(
                'WHATSAPP_BRIDGE_COMMAND',
                whatsapp_data.get('bridge_command', wa_defaults.bridge_command)
            )),
            working_directory=whatsapp_data.get('working_directory'),
            jid_suffix=whatsapp_data.get('jid_suffix', wa_defaults.jid_suffix),
            reconnect_delay=float(os.getenv(
                'WHATSAPP_RECONNECT_DELAY',
                whatsapp_data.get('reconnect_delay', wa_defaults.reconnect_delay)
            )),
            max_reconnect_attempts=int(os.getenv(
                'WHATSAPP_MAX_RECONNECT_ATTEMPTS',
                whatsapp_data.get('max_reconnect_attempts', wa_defaults.max_reconnect_attempts)
            )),
            reconnect_jitter=float(whatsapp_data.get('reconnect_jitter', wa_defaults.reconnect_jitter)),
            request_timeout=float(os.getenv(
                'WHATSAPP_REQUEST_TIMEOUT',
                whatsapp_data.get('request_timeout', wa_defaults.request_timeout)
            )),
            print_qr_in_terminal=_parse_bool(
                whatsapp_data.get('print_qr_in_terminal', wa_defaults.print_qr_in_terminal)
            )
        )

        storage_config = StorageConfig(
            backend=os.getenv('CREDENTIAL_STORE', storage_data.get('backend', storage_defaults.backend)),
            auth_dir=os.getenv('AUTH_DIR', storage_data.get('auth_dir', storage_defaults.auth_dir)),
            mongo_uri=os.getenv('MONGODB_URI', storage_data.get('mongo_uri', storage_defaults.mongo_uri)),
            mongo_database=os.getenv(
                'MONGODB_DATABASE', storage_data.get('mongo_database', storage_defaults.mongo_database)
            ),
            mongo_collection=os.getenv(
                'MONGODB_COLLECTION', storage_data.get('mongo_collection', storage_defaults.mongo_collection)
            )
        )

        logging_config = LoggingConfig(
            level=os.getenv('LOG_LEVEL', logging_data.get('level', logging_defaults.level)),
            file=os.getenv('LOG_FILE', logging_data.get('file', logging_defaults.file)),
            max_size=os.getenv('LOG_MAX_SIZE', logging_data.get('max_size', logging_defaults.max_size)),
            backup_count=int(os.getenv(
                'LOG_BACKUP_COUNT', logging_data.get('backup_count', logging_defaults.backup_count)
            ))
        )

        return cls(
            discord=discord_config,
            whatsapp=whatsapp_config,
            storage=storage_config,
            logging=logging_config
        )

    def validate(self) -> bool:
        """Validate configuration values"""
        errors = []

        # Discord validation
        if not self.discord.token or self.discord.token == "YOUR_DISCORD_BOT_TOKEN":
            errors.append("Discord bot token is required")

        if self.discord.guild_id <= 0:
            errors.append("Discord guild ID must be a positive integer")

        if self.discord.channel_id <= 0:
            errors.append("Discord channel ID must be a positive integer")

        # WhatsApp validation
        if not self.whatsapp.session_id:
            errors.append("WhatsApp session ID is required")

        if not self.whatsapp.bridge_command:
            errors.append("WhatsApp bridge command is required")

        if self.whatsapp.reconnect_delay < 0:
            errors.append("Reconnect delay must not be negative")

        if self.whatsapp.max_reconnect_attempts < 0:
            errors.append("Max reconnect attempts must not be negative")

        if self.whatsapp.request_timeout <= 0:
            errors.append("Request timeout must be positive")

        # Storage validation
        if self.storage.backend not in STORAGE_BACKENDS:
            errors.append(f"Credential store must be one of: {', '.join(STORAGE_BACKENDS)}")
        elif self.storage.backend == "file" and not self.storage.auth_dir:
            errors.append("Auth directory is required for the file credential store")
        elif self.storage.backend == "mongodb" and not self.storage.mongo_uri:
            errors.append("MongoDB URI is required for the mongodb credential store")

        # Logging validation
        try:
            parse_level(self.logging.level)
        except ValueError as e:
            errors.append(str(e))

        try:
            parse_size(self.logging.max_size)
        except ValueError as e:
            errors.append(str(e))

        if errors:
            raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")

        return True

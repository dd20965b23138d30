"""
Configuration Management

Handles loading configuration from environment variables and config files.
"""

import json
import os
import socket
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .protocol.channel import (
    DEFAULT_PORT, UPLOAD_PORT_MIN, UPLOAD_PORT_MAX, MAX_PACKET_SIZE, KeepaliveConfig,
)
from .transfer.pump import CHUNK_SIZE


def _default_device_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Config:
    """
    lanpair configuration.

    Configuration priority (highest to lowest):
    1. Environment variables (LANPAIR_*)
    2. Config file (config.json)
    3. Default values
    """
    # Identity
    device_id: str = field(default_factory=_default_device_id)
    device_name: str = field(default_factory=socket.gethostname)
    device_type: str = 'desktop'

    # Network
    host: str = '0.0.0.0'
    tcp_port: int = DEFAULT_PORT
    upload_port_min: int = UPLOAD_PORT_MIN
    upload_port_max: int = UPLOAD_PORT_MAX

    # Storage
    data_dir: Path = field(default_factory=lambda: Path('./lanpair_data'))

    # Transfers
    chunk_size: int = CHUNK_SIZE
    max_packet_size: int = MAX_PACKET_SIZE

    # Keepalive (seconds / probes)
    keepalive_idle: int = 10
    keepalive_interval: int = 5
    keepalive_count: int = 3

    # Logging
    log_level: str = 'INFO'

    @property
    def keepalive(self) -> KeepaliveConfig:
        return KeepaliveConfig(
            idle=self.keepalive_idle,
            interval=self.keepalive_interval,
            count=self.keepalive_count,
        )

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        load_dotenv()

        config = cls()

        # Identity
        config.device_id = os.getenv('LANPAIR_DEVICE_ID', config.device_id)
        config.device_name = os.getenv('LANPAIR_DEVICE_NAME', config.device_name)
        config.device_type = os.getenv('LANPAIR_DEVICE_TYPE', config.device_type)

        # Network
        config.host = os.getenv('LANPAIR_HOST', config.host)
        config.tcp_port = int(os.getenv('LANPAIR_TCP_PORT', config.tcp_port))
        config.upload_port_min = int(os.getenv('LANPAIR_UPLOAD_PORT_MIN', config.upload_port_min))
        config.upload_port_max = int(os.getenv('LANPAIR_UPLOAD_PORT_MAX', config.upload_port_max))

        # Storage
        data_dir = os.getenv('LANPAIR_DATA_DIR')
        if data_dir:
            config.data_dir = Path(data_dir)

        # Keepalive
        config.keepalive_idle = int(os.getenv('LANPAIR_KEEPALIVE_IDLE', config.keepalive_idle))
        config.keepalive_interval = int(
            os.getenv('LANPAIR_KEEPALIVE_INTERVAL', config.keepalive_interval)
        )
        config.keepalive_count = int(os.getenv('LANPAIR_KEEPALIVE_COUNT', config.keepalive_count))

        # Logging
        config.log_level = os.getenv('LANPAIR_LOG_LEVEL', config.log_level)

        return config

    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """Load configuration from a JSON file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        config = cls()

        # Identity
        config.device_id = data.get('device_id', config.device_id)
        config.device_name = data.get('device_name', config.device_name)
        config.device_type = data.get('device_type', config.device_type)

        # Network
        config.host = data.get('host', config.host)
        config.tcp_port = data.get('tcp_port', config.tcp_port)
        config.upload_port_min = data.get('upload_port_min', config.upload_port_min)
        config.upload_port_max = data.get('upload_port_max', config.upload_port_max)

        # Storage
        if 'data_dir' in data:
            config.data_dir = Path(data['data_dir'])

        # Transfers
        config.chunk_size = data.get('chunk_size', config.chunk_size)
        config.max_packet_size = data.get('max_packet_size', config.max_packet_size)

        # Keepalive
        config.keepalive_idle = data.get('keepalive_idle', config.keepalive_idle)
        config.keepalive_interval = data.get('keepalive_interval', config.keepalive_interval)
        config.keepalive_count = data.get('keepalive_count', config.keepalive_count)

        # Logging
        config.log_level = data.get('log_level', config.log_level)

        return config

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'device_id': self.device_id,
            'device_name': self.device_name,
            'device_type': self.device_type,
            'host': self.host,
            'tcp_port': self.tcp_port,
            'upload_port_min': self.upload_port_min,
            'upload_port_max': self.upload_port_max,
            'data_dir': str(self.data_dir),
            'chunk_size': self.chunk_size,
            'max_packet_size': self.max_packet_size,
            'keepalive_idle': self.keepalive_idle,
            'keepalive_interval': self.keepalive_interval,
            'keepalive_count': self.keepalive_count,
            'log_level': self.log_level,
        }

    def save(self, path: Path):
        """Save configuration to a JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


# Keys whose environment value overrides the file when it differs from the default
_ENV_OVERRIDABLE = [
    'device_name', 'device_type', 'host', 'tcp_port', 'upload_port_min',
    'upload_port_max', 'data_dir', 'keepalive_idle', 'keepalive_interval',
    'keepalive_count', 'log_level',
]


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from file and environment.

    Environment variables override file settings.
    """
    # Start with defaults
    config = Config()

    # Load from file if provided
    if config_path and config_path.exists():
        config = Config.from_file(config_path)

    # Override with environment variables
    env_config = Config.from_env()

    # Merge (env takes precedence for non-default values)
    defaults = Config()
    for key in _ENV_OVERRIDABLE:
        env_val = getattr(env_config, key)
        if env_val != getattr(defaults, key):
            setattr(config, key, env_val)

    # device_id defaults are random, so only an explicit variable counts
    if os.getenv('LANPAIR_DEVICE_ID'):
        config.device_id = env_config.device_id

    return config


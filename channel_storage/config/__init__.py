"""Configuration management for the channel storage gateway."""

from .channels import ChannelConfig
from .channels import ChannelConfigMap
from .channels import load_channel_config_map
from .settings import Settings
from .settings import get_settings
from .settings import reset_settings

__all__ = [
    "ChannelConfig",
    "ChannelConfigMap",
    "Settings",
    "get_settings",
    "load_channel_config_map",
    "reset_settings",
]

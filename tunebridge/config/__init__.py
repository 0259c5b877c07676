"""
Configuration package for TuneBridge

Exposes the settings singleton and its section dataclasses. Settings are
read from YAML files and environment variables (a .env file is honoured);
see settings.py for the lookup order.

Usage:

    from tunebridge.config import get_settings

    settings = get_settings()
    timeout = settings.network.request_timeout
"""

from .settings import (
    get_settings,
    reload_settings,
    Settings,
    PrimaryCatalogConfig,
    SpotifyConfig,
    NetworkConfig,
    RateLimitConfig,
    CacheConfig,
    ResolverConfig,
    PlaybackConfig,
    LoggingConfig,
    StorageConfig,
)

__all__ = [
    'get_settings',
    'reload_settings',
    'Settings',
    'PrimaryCatalogConfig',
    'SpotifyConfig',
    'NetworkConfig',
    'RateLimitConfig',
    'CacheConfig',
    'ResolverConfig',
    'PlaybackConfig',
    'LoggingConfig',
    'StorageConfig',
]

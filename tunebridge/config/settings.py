"""
TuneBridge settings

Settings come from three layers, later layers winning:

1. Dataclass defaults below
2. The first YAML file found: an explicit path, ~/.tunebridge/config.yaml,
   ./config/config.yaml, ./config.yaml
3. Environment variables (a .env file in the working directory is read on
   import), used for the Spotify credentials and a few deployment knobs

A YAML file mirrors the section names:

    primary:
      base_url: https://my-saavn-mirror.example.com
    cache:
      max_age: 600
      persistent: true
    playback:
      preferred_quality: 160kbps

Unknown sections and keys are ignored. Credentials are never written back
by save_config().
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, asdict
from dotenv import load_dotenv

load_dotenv()


@dataclass
class PrimaryCatalogConfig:
    """
    Primary catalog (JioSaavn-style aggregator API) settings

    The primary catalog is the only source of playable audio URLs.
    When probe_on_start is enabled the data source policy checks the API
    once on startup and switches to fixture data if it is unreachable.
    """
    base_url: str = "https://strtux-main.vercel.app"
    probe_timeout: float = 3.0
    probe_on_start: bool = False


@dataclass
class SpotifyConfig:
    """
    Spotify Web API, client-credentials flow

    client_id and client_secret belong in SPOTIFY_CLIENT_ID and
    SPOTIFY_CLIENT_SECRET rather than in a config file.
    """
    client_id: str = ""
    client_secret: str = ""
    token_url: str = "https://accounts.spotify.com/api/token"
    api_base_url: str = "https://api.spotify.com/v1"
    token_expiry_margin: int = 60


@dataclass
class NetworkConfig:
    """
    Outbound HTTP behaviour

    max_concurrent bounds simultaneous network calls across both catalogs;
    max_retries and retry_delay drive the resolution chain's retry of
    transient failures.
    """
    user_agent: str = "TuneBridge/1.0"
    request_timeout: float = 10.0
    max_concurrent: int = 4
    max_retries: int = 2
    retry_delay: float = 1.0


@dataclass
class RateLimitConfig:
    """
    Fixed-window rate limiting configuration

    Each catalog client gets its own limiter. Requests beyond the ceiling
    inside one window are rejected immediately.
    """
    max_requests: int = 30
    window_seconds: float = 60.0
    spotify_max_requests: int = 100


@dataclass
class CacheConfig:
    """
    HTTP response cache configuration

    Successful GET responses are kept for max_age seconds. The sweep runs
    every sweep_interval seconds to drop entries that are never read again.
    With persistent enabled, responses are also written to the local
    key-value store so they survive restarts.
    """
    enabled: bool = True
    max_age: float = 300.0
    max_size: int = 100
    sweep_interval: float = 900.0
    persistent: bool = False


@dataclass
class ResolverConfig:
    """
    Resolution chain cache configuration

    Resolved playable URLs are cached independently of raw responses
    so repeated plays of the same track skip the chain entirely.
    """
    cache_ttl: float = 3600.0
    cache_max_size: int = 500


@dataclass
class PlaybackConfig:
    """
    Playback engine configuration

    Quality preference, setup retry policy and the buffer options handed to
    the native engine on setup.
    """
    preferred_quality: str = "320kbps"
    setup_attempts: int = 3
    setup_retry_delay: float = 1.0
    queue_retry_attempts: int = 2
    min_buffer: int = 2
    max_buffer: int = 15
    play_buffer: int = 2
    back_buffer: int = 0


@dataclass
class LoggingConfig:
    """
    Log level, rotating file and console formatting

    configure_on_startup is off by default: the host application usually
    owns logging, and MusicService.start() only installs handlers when asked.
    """
    level: str = "INFO"
    file: str = ""
    max_size: str = "10MB"
    backup_count: int = 3
    console_output: bool = True
    colored_output: bool = True
    configure_on_startup: bool = False


@dataclass
class StorageConfig:
    """
    Local storage locations

    The key-value store file holds user preferences and, when enabled,
    the persistent response cache.
    """
    config_directory: str = "~/.tunebridge/"
    store_file: str = "store.json"


class Settings:
    """
    All TuneBridge configuration sections

    Each section is a dataclass attribute (settings.network, settings.cache,
    ...). Construction reads the YAML layer and then the environment layer;
    build a new instance, or call reload_settings(), to pick up changes.
    """

    ENV_OVERRIDES = {
        'SPOTIFY_CLIENT_ID': ('spotify', 'client_id'),
        'SPOTIFY_CLIENT_SECRET': ('spotify', 'client_secret'),
        'TUNEBRIDGE_BASE_URL': ('primary', 'base_url'),
        'TUNEBRIDGE_LOG_LEVEL': ('logging', 'level'),
    }

    def __init__(self, config_path: Optional[str] = None):
        """
        Build settings from defaults, a YAML file and the environment

        Args:
            config_path: YAML file to read before the standard locations
        """
        self.config_path = config_path
        self.config_dir = Path.home() / ".tunebridge"

        self.primary = PrimaryCatalogConfig()
        self.spotify = SpotifyConfig()
        self.network = NetworkConfig()
        self.rate_limit = RateLimitConfig()
        self.cache = CacheConfig()
        self.resolver = ResolverConfig()
        self.playback = PlaybackConfig()
        self.logging = LoggingConfig()
        self.storage = StorageConfig()

        self._apply_config(self._read_yaml())
        self._apply_environment()

    def _sections(self) -> Dict[str, Any]:
        return {
            'primary': self.primary,
            'spotify': self.spotify,
            'network': self.network,
            'rate_limit': self.rate_limit,
            'cache': self.cache,
            'resolver': self.resolver,
            'playback': self.playback,
            'logging': self.logging,
            'storage': self.storage,
        }

    def _candidate_files(self) -> List[Path]:
        candidates = [Path(self.config_path)] if self.config_path else []
        candidates += [
            self.config_dir / "config.yaml",
            Path("config") / "config.yaml",
            Path("config.yaml"),
        ]
        return candidates

    def _read_yaml(self) -> Dict[str, Any]:
        """
        Load the first readable YAML file

        Logging is not configured yet at this point, so problems with a file
        are printed and the next location is tried.
        """
        for path in self._candidate_files():
            if not path.exists():
                continue
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    data = yaml.safe_load(f)
            except (OSError, yaml.YAMLError) as e:
                print(f"Warning: could not read config file {path}: {e}")
                continue
            return data if isinstance(data, dict) else {}
        return {}

    def _apply_config(self, config_data: Dict[str, Any]) -> None:
        """Copy known keys of known sections onto the section dataclasses"""
        sections = self._sections()

        for name, values in config_data.items():
            section = sections.get(name)
            if section is None or not isinstance(values, dict):
                continue
            for key, value in values.items():
                if hasattr(section, key):
                    setattr(section, key, value)

    def _apply_environment(self) -> None:
        """Environment variables override whatever the YAML layer set"""
        sections = self._sections()

        for env_var, (section_name, key) in self.ENV_OVERRIDES.items():
            value = os.getenv(env_var)
            if value:
                setattr(sections[section_name], key, value)

    def get_config_directory(self) -> Path:
        """Config directory with ~ expanded"""
        return Path(self.storage.config_directory).expanduser()

    def get_store_path(self) -> Path:
        """Location of the JSON key-value store file"""
        return self.get_config_directory() / self.storage.store_file

    def save_config(self, path: Optional[str] = None) -> None:
        """
        Write every section to a YAML file, credentials blanked

        Args:
            path: Target file, config.yaml in the config directory by default

        Raises:
            OSError: If the file cannot be written
        """
        target = Path(path) if path else self.get_config_directory() / "config.yaml"

        data = {name: asdict(section) for name, section in self._sections().items()}
        data['spotify'].update(client_id="", client_secret="")

        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, 'w', encoding='utf-8') as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)

    def validation_errors(self) -> List[str]:
        """
        Collect configuration problems

        Returns:
            List of human-readable error strings, empty when valid
        """
        errors = []

        if not self.primary.base_url.startswith(('http://', 'https://')):
            errors.append(f"Invalid primary catalog base_url: {self.primary.base_url}")

        if self.network.request_timeout <= 0:
            errors.append("network.request_timeout must be positive")

        if self.network.max_concurrent < 1:
            errors.append("network.max_concurrent must be at least 1")

        if self.rate_limit.max_requests < 1 or self.rate_limit.window_seconds <= 0:
            errors.append("rate_limit.max_requests and window_seconds must be positive")

        if self.cache.max_age <= 0 or self.cache.max_size < 1:
            errors.append("cache.max_age and cache.max_size must be positive")

        if self.playback.setup_attempts < 1:
            errors.append("playback.setup_attempts must be at least 1")

        if not self.playback.preferred_quality.rstrip().lower().endswith('kbps'):
            errors.append(f"Invalid preferred quality: {self.playback.preferred_quality}")

        return errors

    def validate(self) -> bool:
        """Print any configuration problems; True when there are none"""
        errors = self.validation_errors()
        if not errors:
            return True

        print("TuneBridge configuration problems:")
        for error in errors:
            print(f"  - {error}")
        return False

    @property
    def has_spotify_credentials(self) -> bool:
        return bool(self.spotify.client_id and self.spotify.client_secret)

    def __str__(self) -> str:
        sections = [
            f"Primary: {self.primary.base_url}",
            f"Timeout: {self.network.request_timeout}s",
            f"Concurrency: {self.network.max_concurrent}",
            f"Rate: {self.rate_limit.max_requests}/{self.rate_limit.window_seconds}s",
            f"Quality: {self.playback.preferred_quality}",
        ]
        return f"Settings({', '.join(sections)})"


# Process-wide instance used when no Settings is passed explicitly
settings = Settings()


def get_settings() -> Settings:
    """Return the process-wide Settings instance"""
    return settings


def reload_settings(config_path: Optional[str] = None) -> Settings:
    """
    Replace the process-wide Settings with a freshly loaded instance

    Args:
        config_path: YAML file to read before the standard locations

    Returns:
        The new Settings instance
    """
    global settings
    settings = Settings(config_path)
    return settings

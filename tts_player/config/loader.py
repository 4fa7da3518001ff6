"""
Configuration management and loading.

Handles provider profiles, application settings and environment variables.
"""

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional

import yaml


DEFAULT_DB_PATH = "~/.tts-player/tts_usage.db"


@dataclass(frozen=True)
class ProviderProfile:
    """Everything that differs between TTS providers.

    A profile describes the endpoint shape, authentication, request body
    layout, text limits and voice policy of one provider. The pipeline
    itself is provider-agnostic.
    """
    name: str
    base_url: str
    speech_path: str
    default_model: str
    default_voice: str
    api_key_env: str
    auth_header: str = "Authorization"
    auth_scheme: str = "Bearer"
    text_field: str = "input"
    model_field: str = "model"
    voice_field: Optional[str] = "voice"
    output_format: str = "mp3"
    output_format_field: str = "response_format"
    output_format_in_query: bool = False
    voices: Optional[FrozenSet[str]] = None
    max_request_chars: int = 4096
    chunk_size: int = 3800
    reject_overlong: bool = False
    timeout: float = 120.0
    account_path: Optional[str] = None

    def __post_init__(self):
        """Validate profile limits."""
        if not self.name:
            raise ValueError("profile name cannot be empty")
        if self.max_request_chars <= 0:
            raise ValueError("max_request_chars must be > 0")
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be > 0")
        if self.chunk_size > self.max_request_chars:
            raise ValueError("chunk_size cannot exceed max_request_chars")
        if self.timeout <= 0:
            raise ValueError("timeout must be > 0")
        if self.voices is not None and self.default_voice not in self.voices:
            raise ValueError(f"default_voice '{self.default_voice}' is not in voices")

    @property
    def open_voice_catalog(self) -> bool:
        """True when any non-empty voice id is accepted."""
        return self.voices is None

    def speech_url(self, voice: str) -> str:
        return self.base_url.rstrip("/") + self.speech_path.format(voice=voice)

    def account_url(self) -> Optional[str]:
        if self.account_path is None:
            return None
        return self.base_url.rstrip("/") + self.account_path

    def auth_headers(self, api_key: str) -> Dict[str, str]:
        value = f"{self.auth_scheme} {api_key}" if self.auth_scheme else api_key
        return {self.auth_header: value}


OPENAI_PROFILE = ProviderProfile(
    name="openai",
    base_url="https://api.openai.com",
    speech_path="/v1/audio/speech",
    default_model="tts-1-hd",
    default_voice="alloy",
    api_key_env="OPENAI_API_KEY",
    voices=frozenset({"alloy", "echo", "fable", "onyx", "nova", "shimmer"}),
    max_request_chars=4096,
    chunk_size=3800,  # Safe margin under 4096
    reject_overlong=False,
    timeout=120.0,
)

ELEVENLABS_PROFILE = ProviderProfile(
    name="elevenlabs",
    base_url="https://api.elevenlabs.io",
    speech_path="/v1/text-to-speech/{voice}",
    default_model="eleven_multilingual_v2",
    default_voice="rachel",
    api_key_env="ELEVENLABS_API_KEY",
    auth_header="xi-api-key",
    auth_scheme="",
    text_field="text",
    model_field="model_id",
    voice_field=None,
    output_format="mp3_44100_128",
    output_format_field="output_format",
    output_format_in_query=True,
    voices=frozenset({
        "rachel", "adam", "bella", "antoni", "elli",
        "josh", "arnold", "domi", "sam",
    }),
    max_request_chars=5000,
    chunk_size=4500,
    reject_overlong=True,
    timeout=60.0,
    account_path="/v1/user/subscription",
)

BUILTIN_PROFILES: Dict[str, ProviderProfile] = {
    OPENAI_PROFILE.name: OPENAI_PROFILE,
    ELEVENLABS_PROFILE.name: ELEVENLABS_PROFILE,
}


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff settings.

    The wait after failed attempt n (1-based) is base_delay * 2 ** (n - 1).
    """
    max_attempts: int = 3
    base_delay: float = 1.0

    def __post_init__(self):
        """Validate retry values."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0:
            raise ValueError("base_delay cannot be negative")


@dataclass(frozen=True)
class AppSettings:
    """Complete application configuration."""
    profile: ProviderProfile = OPENAI_PROFILE
    database: str = DEFAULT_DB_PATH
    pacing_delay: float = 0.2
    ffmpeg: str = "ffmpeg"
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    def __post_init__(self):
        """Validate settings values."""
        if self.pacing_delay < 0:
            raise ValueError("pacing_delay cannot be negative")
        if not self.ffmpeg:
            raise ValueError("ffmpeg cannot be empty")

    @property
    def database_path(self) -> str:
        """Database location with the user directory expanded."""
        if self.database.startswith("sqlite:"):
            return self.database
        return str(Path(self.database).expanduser())

    def api_key(self, environ: Optional[Dict[str, str]] = None) -> Optional[str]:
        """Read the API key for the active profile from the environment."""
        env = os.environ if environ is None else environ
        value = env.get(self.profile.api_key_env, "").strip()
        return value or None


def load_settings(path: Optional[str] = None) -> AppSettings:
    """Load and validate application settings from a YAML file.

    Without a path the built-in defaults are returned (OpenAI profile).

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated AppSettings object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    if path is None:
        return AppSettings()

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {'provider', 'database', 'pacing_delay', 'ffmpeg', 'retry', 'profiles'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    profiles = dict(BUILTIN_PROFILES)
    profiles_data = raw_config.get('profiles', {}) or {}
    if not isinstance(profiles_data, dict):
        raise ValueError("'profiles' must be a dictionary")
    for profile_name, profile_data in profiles_data.items():
        if not isinstance(profile_data, dict):
            raise ValueError(f"Profile '{profile_name}' must be a dictionary")
        profiles[profile_name] = _parse_profile(
            profile_name, profile_data, profiles.get(profile_name)
        )

    provider = raw_config.get('provider', OPENAI_PROFILE.name)
    if not isinstance(provider, str):
        raise ValueError("'provider' must be a string")
    if provider not in profiles:
        raise ValueError(f"'provider' must be one of: {sorted(profiles)}")

    retry = RetryPolicy()
    if 'retry' in raw_config:
        retry = _parse_retry(raw_config['retry'])

    kwargs: Dict[str, Any] = {'profile': profiles[provider], 'retry': retry}

    if 'database' in raw_config:
        if not isinstance(raw_config['database'], str) or not raw_config['database'].strip():
            raise ValueError("'database' must be a non-empty string")
        kwargs['database'] = raw_config['database']

    if 'pacing_delay' in raw_config:
        kwargs['pacing_delay'] = _number(raw_config['pacing_delay'], 'pacing_delay')

    if 'ffmpeg' in raw_config:
        if not isinstance(raw_config['ffmpeg'], str):
            raise ValueError("'ffmpeg' must be a string")
        kwargs['ffmpeg'] = raw_config['ffmpeg']

    return AppSettings(**kwargs)


def _parse_retry(data: Any) -> RetryPolicy:
    """Parse and validate the retry section."""
    if not isinstance(data, dict):
        raise ValueError("'retry' must be a dictionary")

    unknown_keys = set(data.keys()) - {'max_attempts', 'base_delay'}
    if unknown_keys:
        raise ValueError(f"Unknown retry keys: {unknown_keys}")

    kwargs: Dict[str, Any] = {}
    if 'max_attempts' in data:
        value = data['max_attempts']
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError("'max_attempts' in retry must be an integer")
        kwargs['max_attempts'] = value
    if 'base_delay' in data:
        kwargs['base_delay'] = _number(data['base_delay'], 'retry.base_delay')
    return RetryPolicy(**kwargs)


def _parse_profile(
    name: str,
    data: Dict,
    base: Optional[ProviderProfile]
) -> ProviderProfile:
    """Parse a custom profile, or an override of a built-in one.

    Args:
        name: Profile name
        data: Profile configuration data
        base: Existing profile being overridden, if any

    Returns:
        Validated ProviderProfile

    Raises:
        ValueError: If configuration is invalid
    """
    allowed_keys = {f.name for f in fields(ProviderProfile)} - {'name'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in profiles.{name}: {unknown_keys}")

    values = dict(data)
    if 'voices' in values and values['voices'] is not None:
        voices = values['voices']
        if not isinstance(voices, list) or not all(isinstance(v, str) for v in voices):
            raise ValueError(f"'voices' in profiles.{name} must be a list of strings")
        values['voices'] = frozenset(voices)

    if base is not None:
        return replace(base, **values)

    required = {'base_url', 'speech_path', 'default_model', 'default_voice', 'api_key_env'}
    missing = required - set(values.keys())
    if missing:
        raise ValueError(f"Missing required keys in profiles.{name}: {sorted(missing)}")
    return ProviderProfile(name=name, **values)


def _number(value: Any, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{path}' must be a number")
    return float(value)

"""
Immutable configuration snapshots.

:func:`build_config` is the single place where operator overrides, the
configuration file and the hard-coded defaults are merged. Every tunable
resolves as ``override ?? file ?? default``. The resulting :class:`AppConfig`
is never mutated; a reload produces a new one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple, TypeVar

import yaml

from vibecord.configuration.config_file import ConfigError, FileConfig, ResponseRule
from vibecord.util.logger import get_logger

logger = get_logger("app_configuration")

T = TypeVar("T")

LOG_LEVELS = ("debug", "info", "warn", "error")
ENVIRONMENTS = ("development", "production")

DEFAULT_LOG_LEVEL = "info"
DEFAULT_ENVIRONMENT = "production"
DEFAULT_DATA_DIR = "./"
DEFAULT_CONFIG_FILE = "./config.yaml"
DEFAULT_STICKY_DURATION = timedelta(minutes=30)
DEFAULT_MAX_CONTEXT_MESSAGES = 10
DEFAULT_MAX_CONTEXT_AGE = timedelta(hours=24)
DEFAULT_MAX_CONTEXT_TOKENS = 2000
DEFAULT_BAN_DURATION = timedelta(minutes=5)
DEFAULT_AMBIENT_DROP_CHANCE = 0.4
DEFAULT_TRIGGER_PATTERN = "vibe"
DEFAULT_MODEL = "gpt-4o-mini"


def first_set(*values: Optional[T]) -> Optional[T]:
    """Return the first value that is not ``None``."""
    for value in values:
        if value is not None:
            return value
    return None


@dataclass(frozen=True)
class BuildInfo:
    version: str = "dev"
    build_time: str = "unknown"
    environment: Optional[str] = None


@dataclass(frozen=True)
class ConfigOverrides:
    """
    Operator overrides from the command line and environment.

    ``None`` means "not set", so a flag explicitly set to a value equal to the
    default still wins over the file.
    """

    log_level: Optional[str] = None
    environment: Optional[str] = None
    data_dir: Optional[str] = None
    config_file: Optional[str] = None
    discord_token: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    llm_model: Optional[str] = None
    preferred_users: Optional[Tuple[str, ...]] = None
    preferred_channels: Optional[Tuple[str, ...]] = None
    personas: Optional[str] = None
    sticky_duration: Optional[timedelta] = None
    max_context_messages: Optional[int] = None
    max_context_age: Optional[timedelta] = None
    max_context_tokens: Optional[int] = None
    ban_duration: Optional[timedelta] = None
    trigger_pattern: Optional[str] = None
    ambient_drop_chance: Optional[float] = None


@dataclass(frozen=True)
class PlatformConfig:
    token: str = ""
    preferred_channels: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AIConfig:
    api_key: str = ""
    base_url: Optional[str] = None
    model: str = DEFAULT_MODEL


@dataclass(frozen=True)
class ChatConfig:
    responses: Tuple[ResponseRule, ...] = ()
    preferred_users: Tuple[str, ...] = ()


@dataclass(frozen=True)
class VibecheckConfig:
    preferred_users: Tuple[str, ...] = ()
    data_dir: Path = Path(DEFAULT_DATA_DIR)
    ban_duration: timedelta = DEFAULT_BAN_DURATION
    trigger_pattern: str = DEFAULT_TRIGGER_PATTERN
    good_reactions: Tuple[str, ...] = ()
    good_text: Tuple[str, ...] = ()
    bad_reactions: Tuple[str, ...] = ()
    bad_text: Tuple[str, ...] = ()

    def is_exempt(self, user_id: str, username: str = "") -> bool:
        """Preferred users are matched by id or by username."""
        return user_id in self.preferred_users or (bool(username) and username in self.preferred_users)


@dataclass(frozen=True)
class AIChatConfig:
    data_dir: Path = Path(DEFAULT_DATA_DIR)
    personas: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    sticky_duration: timedelta = DEFAULT_STICKY_DURATION
    max_context_messages: int = DEFAULT_MAX_CONTEXT_MESSAGES
    max_context_age: timedelta = DEFAULT_MAX_CONTEXT_AGE
    max_context_tokens: int = DEFAULT_MAX_CONTEXT_TOKENS
    ambient_drop_chance: float = DEFAULT_AMBIENT_DROP_CHANCE


@dataclass(frozen=True)
class AppConfig:
    """One merged, immutable view of every setting."""

    version: str = "dev"
    build_time: str = "unknown"
    log_level: str = DEFAULT_LOG_LEVEL
    environment: str = DEFAULT_ENVIRONMENT
    data_dir: Path = Path(DEFAULT_DATA_DIR)
    config_file: Path = Path(DEFAULT_CONFIG_FILE)
    platform: PlatformConfig = field(default_factory=PlatformConfig)
    ai: AIConfig = field(default_factory=AIConfig)
    chat: ChatConfig = field(default_factory=ChatConfig)
    vibecheck: VibecheckConfig = field(default_factory=VibecheckConfig)
    aichat: AIChatConfig = field(default_factory=AIChatConfig)

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


def parse_personas(text: str) -> dict[str, str]:
    """Parse a persona override given as YAML or JSON text (``name: prompt``).

    Raises:
        ConfigError: If the text is not a mapping of names to prompt strings.
    """
    try:
        data: Any = yaml.safe_load(text) if text.strip() else {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid personas override: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("personas override must be a mapping of name to prompt")
    personas = {}
    for name, prompt in data.items():
        if not isinstance(prompt, str):
            raise ConfigError(f"persona {name!r} must map to a prompt string")
        personas[str(name)] = prompt
    return personas


def _normalize_log_level(value: str) -> str:
    level = value.strip().lower()
    if level == "warning":
        level = "warn"
    if level not in LOG_LEVELS:
        logger.warning("[CONFIG] Unknown log level %r, using %s", value, DEFAULT_LOG_LEVEL)
        return DEFAULT_LOG_LEVEL
    return level


def _normalize_environment(value: str) -> str:
    environment = value.strip().lower()
    if environment not in ENVIRONMENTS:
        logger.warning("[CONFIG] Unknown environment %r, using %s", value, DEFAULT_ENVIRONMENT)
        return DEFAULT_ENVIRONMENT
    return environment


def _resolve_dir(value: str) -> Path:
    return Path(value).expanduser().resolve()


def build_config(
    overrides: ConfigOverrides | None = None,
    file_config: FileConfig | None = None,
    build_info: BuildInfo | None = None,
) -> AppConfig:
    """
    Merge overrides, file values and defaults into a new :class:`AppConfig`.

    Pure apart from warnings for unusable values; calling it twice with the
    same inputs yields equal snapshots.

    Raises:
        ConfigError: If the personas override cannot be parsed.
    """
    o = overrides or ConfigOverrides()
    f = file_config or FileConfig()
    b = build_info or BuildInfo()

    log_level = _normalize_log_level(first_set(o.log_level, f.log_level, DEFAULT_LOG_LEVEL))
    environment = _normalize_environment(first_set(o.environment, f.environment, b.environment, DEFAULT_ENVIRONMENT))
    data_dir = _resolve_dir(first_set(o.data_dir, f.data_dir, DEFAULT_DATA_DIR))
    config_file = Path(first_set(o.config_file, DEFAULT_CONFIG_FILE)).expanduser()
    preferred_users = tuple(first_set(o.preferred_users, f.preferred_users, ()))

    if o.personas is not None:
        personas = parse_personas(o.personas)
    else:
        personas = dict(first_set(f.aichat.personas, {}))

    max_context_messages = first_set(o.max_context_messages, f.aichat.max_context_messages, DEFAULT_MAX_CONTEXT_MESSAGES)
    max_context_tokens = first_set(o.max_context_tokens, f.aichat.max_context_tokens, DEFAULT_MAX_CONTEXT_TOKENS)

    return AppConfig(
        version=b.version,
        build_time=b.build_time,
        log_level=log_level,
        environment=environment,
        data_dir=data_dir,
        config_file=config_file,
        platform=PlatformConfig(
            token=o.discord_token or "",
            preferred_channels=tuple(o.preferred_channels or ()),
        ),
        ai=AIConfig(
            api_key=o.openai_api_key or "",
            base_url=first_set(o.openai_base_url, f.ai.base_url),
            model=first_set(o.llm_model, f.ai.model, DEFAULT_MODEL),
        ),
        chat=ChatConfig(
            responses=tuple(first_set(f.chat.responses, ())),
            preferred_users=preferred_users,
        ),
        vibecheck=VibecheckConfig(
            preferred_users=preferred_users,
            data_dir=data_dir,
            ban_duration=first_set(o.ban_duration, f.vibecheck.ban_duration, DEFAULT_BAN_DURATION),
            trigger_pattern=first_set(o.trigger_pattern, f.vibecheck.trigger_pattern, DEFAULT_TRIGGER_PATTERN),
            good_reactions=tuple(first_set(f.vibecheck.good_reactions, ())),
            good_text=tuple(first_set(f.vibecheck.good_text, ())),
            bad_reactions=tuple(first_set(f.vibecheck.bad_reactions, ())),
            bad_text=tuple(first_set(f.vibecheck.bad_text, ())),
        ),
        aichat=AIChatConfig(
            data_dir=data_dir,
            personas=MappingProxyType(personas),
            sticky_duration=first_set(o.sticky_duration, f.aichat.sticky_duration, DEFAULT_STICKY_DURATION),
            max_context_messages=max_context_messages,
            max_context_age=first_set(o.max_context_age, f.aichat.max_context_age, DEFAULT_MAX_CONTEXT_AGE),
            max_context_tokens=max_context_tokens,
            ambient_drop_chance=first_set(o.ambient_drop_chance, f.aichat.ambient_drop_chance, DEFAULT_AMBIENT_DROP_CHANCE),
        ),
    )

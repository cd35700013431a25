"""
The watched configuration file layer.

Reads a YAML or JSON file into a :class:`FileConfig`. Every field is optional:
``None`` means "not present in the file" so the snapshot builder can fall back
to the hard-coded default. Values of the wrong type are ignored with a warning
rather than failing the whole file; only unreadable or unparseable files
raise :class:`ConfigFileError`.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from vibecord.util.logger import get_logger

logger = get_logger("config_file")


class ConfigError(Exception):
    """Base class for configuration problems."""


class ConfigFileError(ConfigError):
    """The configuration file could not be read or parsed."""


# ----------------------------------------------------------------------
# Durations
# ----------------------------------------------------------------------

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: Any) -> timedelta:
    """Parse a duration given as seconds or as a Go-style string.

    Accepts ``timedelta``, ints/floats (seconds), numeric strings (seconds) and
    strings such as ``"5m"``, ``"1h30m"``, ``"45s"`` or ``"250ms"``.

    Raises:
        ValueError: If the value is not a recognizable duration.
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)
    if not isinstance(value, str):
        raise ValueError(f"invalid duration: {value!r}")

    text = value.strip()
    if not text:
        raise ValueError("empty duration")
    try:
        return timedelta(seconds=float(text))
    except ValueError:
        pass

    sign = 1.0
    if text[0] in "+-":
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]

    total = 0.0
    position = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            raise ValueError(f"invalid duration: {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if position == 0 or position != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return timedelta(seconds=sign * total)


def format_duration(value: timedelta) -> str:
    """Render a duration the way the config file accepts it (``1h30m0s``)."""
    total = value.total_seconds()
    sign = "-" if total < 0 else ""
    total = abs(total)
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    parts = []
    if hours:
        parts.append(f"{int(hours)}h")
    if hours or minutes:
        parts.append(f"{int(minutes)}m")
    parts.append(f"{seconds:g}s")
    return sign + "".join(parts)


# ----------------------------------------------------------------------
# File sections
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class ResponseRule:
    """One scripted response entry from the ``chat.responses`` list."""

    pattern: str
    message: str = ""
    random_messages: Tuple[str, ...] = ()
    reactions: Tuple[str, ...] = ()
    is_regexp: bool = False


@dataclass(frozen=True)
class ChatFileConfig:
    responses: Optional[Tuple[ResponseRule, ...]] = None


@dataclass(frozen=True)
class VibecheckFileConfig:
    trigger_pattern: Optional[str] = None
    ban_duration: Optional[timedelta] = None
    good_reactions: Optional[Tuple[str, ...]] = None
    good_text: Optional[Tuple[str, ...]] = None
    bad_reactions: Optional[Tuple[str, ...]] = None
    bad_text: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class AIChatFileConfig:
    sticky_duration: Optional[timedelta] = None
    max_context_messages: Optional[int] = None
    max_context_age: Optional[timedelta] = None
    max_context_tokens: Optional[int] = None
    ambient_drop_chance: Optional[float] = None
    personas: Optional[Dict[str, str]] = None


@dataclass(frozen=True)
class AIFileConfig:
    base_url: Optional[str] = None
    model: Optional[str] = None


@dataclass(frozen=True)
class FileConfig:
    """Everything the configuration file may set."""

    log_level: Optional[str] = None
    environment: Optional[str] = None
    data_dir: Optional[str] = None
    preferred_users: Optional[Tuple[str, ...]] = None
    ai: AIFileConfig = field(default_factory=AIFileConfig)
    chat: ChatFileConfig = field(default_factory=ChatFileConfig)
    vibecheck: VibecheckFileConfig = field(default_factory=VibecheckFileConfig)
    aichat: AIChatFileConfig = field(default_factory=AIChatFileConfig)


# ----------------------------------------------------------------------
# Reading
# ----------------------------------------------------------------------

def read_config_file(path: Path | str) -> Dict[str, Any]:
    """Read and parse a ``.yaml``/``.yml``/``.json`` file into a mapping.

    An empty file yields an empty mapping.

    Raises:
        ConfigFileError: For a missing/unreadable file, an unsupported
            extension, a parse error, or a top-level value that is not a mapping.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix not in (".json", ".yaml", ".yml"):
        raise ConfigFileError(f"unsupported config file format: {suffix or '<none>'}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigFileError(f"read config file {path}: {exc}") from exc

    try:
        if suffix == ".json":
            data = json.loads(content) if content.strip() else {}
        else:
            data = yaml.safe_load(content)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigFileError(f"parse config file {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigFileError(f"config file {path} must contain a mapping at the top level")
    return data


def load_file_config(path: Path | str) -> FileConfig:
    """Read ``path`` and convert it into a :class:`FileConfig`."""
    return parse_file_config(read_config_file(path))


def parse_file_config(data: Mapping[str, Any]) -> FileConfig:
    """Convert a raw mapping into a :class:`FileConfig`, skipping bad values."""
    return FileConfig(
        log_level=_opt_str(data, "log_level"),
        environment=_opt_str(data, "environment"),
        data_dir=_opt_str(data, "data_dir"),
        preferred_users=_opt_str_tuple(data, "preferred_users"),
        ai=_parse_ai(_section(data, "ai")),
        chat=_parse_chat(_section(data, "chat")),
        vibecheck=_parse_vibecheck(_section(data, "vibecheck")),
        aichat=_parse_aichat(_section(data, "aichat")),
    )


def _parse_ai(section: Mapping[str, Any]) -> AIFileConfig:
    return AIFileConfig(
        base_url=_opt_str(section, "base_url"),
        model=_opt_str(section, "model"),
    )


def _parse_chat(section: Mapping[str, Any]) -> ChatFileConfig:
    raw = section.get("responses")
    if raw is None:
        return ChatFileConfig()
    if not isinstance(raw, list):
        logger.warning("[CONFIG FILE] chat.responses must be a list, ignoring")
        return ChatFileConfig()

    rules = []
    for index, entry in enumerate(raw):
        rule = _parse_response_rule(entry)
        if rule is None:
            logger.warning("[CONFIG FILE] Ignoring invalid chat.responses[%d]: %r", index, entry)
            continue
        rules.append(rule)
    return ChatFileConfig(responses=tuple(rules))


def _parse_response_rule(entry: Any) -> ResponseRule | None:
    if not isinstance(entry, dict):
        return None
    pattern = entry.get("pattern")
    if not isinstance(pattern, str) or not pattern:
        return None
    message = entry.get("message") or ""
    if not isinstance(message, str):
        return None
    random_messages = entry.get("random_messages", entry.get("randomMessages")) or []
    reactions = entry.get("reactions") or []
    if not isinstance(random_messages, list) or not isinstance(reactions, list):
        return None
    is_regexp = entry.get("is_regexp", entry.get("isRegexp", False))
    return ResponseRule(
        pattern=pattern,
        message=message,
        random_messages=tuple(str(m) for m in random_messages if m),
        reactions=tuple(str(r) for r in reactions if r),
        is_regexp=bool(is_regexp),
    )


def _parse_vibecheck(section: Mapping[str, Any]) -> VibecheckFileConfig:
    return VibecheckFileConfig(
        trigger_pattern=_opt_str(section, "trigger_pattern", "vibecheck"),
        ban_duration=_opt_duration(section, "ban_duration", "vibecheck"),
        good_reactions=_opt_str_tuple(section, "good_reactions", "vibecheck"),
        good_text=_opt_str_tuple(section, "good_text", "vibecheck"),
        bad_reactions=_opt_str_tuple(section, "bad_reactions", "vibecheck"),
        bad_text=_opt_str_tuple(section, "bad_text", "vibecheck"),
    )


def _parse_aichat(section: Mapping[str, Any]) -> AIChatFileConfig:
    personas = section.get("personas")
    if personas is not None:
        if isinstance(personas, dict):
            personas = {str(name): prompt for name, prompt in personas.items() if isinstance(prompt, str)}
        else:
            logger.warning("[CONFIG FILE] aichat.personas must be a mapping, ignoring")
            personas = None

    drop_chance = section.get("ambient_drop_chance")
    if drop_chance is not None:
        if isinstance(drop_chance, bool) or not isinstance(drop_chance, (int, float)) or not 0.0 <= drop_chance <= 1.0:
            logger.warning("[CONFIG FILE] aichat.ambient_drop_chance must be within [0, 1], ignoring")
            drop_chance = None
        else:
            drop_chance = float(drop_chance)

    return AIChatFileConfig(
        sticky_duration=_opt_duration(section, "sticky_duration", "aichat"),
        max_context_messages=_opt_int(section, "max_context_messages", "aichat"),
        max_context_age=_opt_duration(section, "max_context_age", "aichat"),
        max_context_tokens=_opt_int(section, "max_context_tokens", "aichat"),
        ambient_drop_chance=drop_chance,
        personas=personas,
    )


# ----------------------------------------------------------------------
# Field helpers
# ----------------------------------------------------------------------

def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = data.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        logger.warning("[CONFIG FILE] Section %s must be a mapping, ignoring", name)
        return {}
    return section


def _qualified(prefix: str, key: str) -> str:
    return f"{prefix}.{key}" if prefix else key


def _opt_str(data: Mapping[str, Any], key: str, prefix: str = "") -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        logger.warning("[CONFIG FILE] %s must be a string, ignoring", _qualified(prefix, key))
        return None
    return str(value)


def _opt_int(data: Mapping[str, Any], key: str, prefix: str = "") -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        logger.warning("[CONFIG FILE] %s must be an integer, ignoring", _qualified(prefix, key))
        return None
    return value


def _opt_duration(data: Mapping[str, Any], key: str, prefix: str = "") -> Optional[timedelta]:
    value = data.get(key)
    if value is None:
        return None
    try:
        return parse_duration(value)
    except ValueError:
        logger.warning("[CONFIG FILE] %s is not a valid duration (%r), ignoring", _qualified(prefix, key), value)
        return None


def _opt_str_tuple(data: Mapping[str, Any], key: str, prefix: str = "") -> Optional[Tuple[str, ...]]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        logger.warning("[CONFIG FILE] %s must be a list of strings, ignoring", _qualified(prefix, key))
        return None
    return tuple(str(item) for item in value if item is not None and str(item))

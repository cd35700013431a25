"""
Vibecord
========

A Discord bot running three features against every message: scripted
pattern responses, an LLM chat persona, and the vibecheck moderation routine.
Settings come from command-line flags and environment variables, a watched
configuration file, and built-in defaults, in that order.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from dataclasses import fields
from datetime import timedelta
from typing import List, Mapping, Optional, Sequence, Tuple

import discord
from dotenv import load_dotenv

from vibecord import __version__
from vibecord.ai.llm_client import OpenAICompletionClient
from vibecord.bot import event_listener
from vibecord.bot.discord_platform import DiscordPlatformClient
from vibecord.configuration.app_configuration import AppConfig, BuildInfo, ConfigOverrides
from vibecord.configuration.config_file import ConfigError, parse_duration
from vibecord.configuration.config_manager import ConfigManager
from vibecord.core.dispatcher import EventDispatcher
from vibecord.core.feature_processor import FeatureProcessor
from vibecord.features.aichat.aichat_feature import AIChatFeature
from vibecord.features.aichat.context_store import ContextStoreError, SQLiteContextStore
from vibecord.features.responses import ResponsesFeature
from vibecord.features.vibecheck.vibecheck_feature import VibecheckFeature
from vibecord.util.logger import get_logger, handle_exception, set_log_level

logger = get_logger("main")

BUILD_TIME = os.getenv("VIBECORD_BUILD_TIME", "unknown")
BUILD_ENVIRONMENT = os.getenv("VIBECORD_BUILD_ENVIRONMENT") or None


# ----------------------------------------------------------------------
# Command line and environment
# ----------------------------------------------------------------------

def _duration(value: str) -> timedelta:
    try:
        return parse_duration(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _probability(value: str) -> float:
    try:
        chance = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid probability: {value!r}") from exc
    if not 0.0 <= chance <= 1.0:
        raise argparse.ArgumentTypeError("probability must be within [0, 1]")
    return chance


def _csv(value: str) -> Tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


def build_parser() -> argparse.ArgumentParser:
    """Every flag defaults to None so "not given" can fall through to the file."""
    parser = argparse.ArgumentParser(prog="vibecord", description="Discord vibe checking chat bot.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", choices=["debug", "info", "warn", "error"])
    parser.add_argument("--environment", choices=["development", "production"])
    parser.add_argument("--data-dir")
    parser.add_argument("--config-file", help="YAML or JSON configuration file; empty string disables it")
    parser.add_argument("--discord-token")
    parser.add_argument("--openai-api-key")
    parser.add_argument("--openai-base-url")
    parser.add_argument("--model", dest="llm_model")
    parser.add_argument("--preferred-users", type=_csv, help="comma separated user ids or usernames")
    parser.add_argument("--preferred-channels", type=_csv, help="comma separated channel ids")
    parser.add_argument("--personas-config", dest="personas", help="YAML or JSON mapping of persona name to prompt")
    parser.add_argument("--personas-sticky-duration", dest="sticky_duration", type=_duration)
    parser.add_argument("--max-context-messages", type=int)
    parser.add_argument("--max-context-age", type=_duration)
    parser.add_argument("--max-context-tokens", type=int)
    parser.add_argument("--ban-duration", type=_duration)
    parser.add_argument("--trigger-pattern")
    parser.add_argument("--ambient-drop-chance", type=_probability)
    return parser


# flag destination -> environment variable
ENVIRONMENT_VARIABLES = {
    "log_level": "VIBECORD_LOG_LEVEL",
    "environment": "VIBECORD_ENVIRONMENT",
    "data_dir": "VIBECORD_DATA_DIR",
    "config_file": "VIBECORD_CONFIG_FILE",
    "discord_token": "DISCORD_BOT_TOKEN",
    "openai_api_key": "OPENAI_API_KEY",
    "openai_base_url": "OPENAI_BASE_URL",
    "llm_model": "VIBECORD_MODEL",
    "preferred_users": "VIBECORD_PREFERRED_USERS",
    "preferred_channels": "VIBECORD_PREFERRED_CHANNELS",
    "personas": "VIBECORD_PERSONAS_CONFIG",
}

LIST_OVERRIDES = ("preferred_users", "preferred_channels")


def overrides_from(args: argparse.Namespace, environ: Mapping[str, str]) -> ConfigOverrides:
    """Flags win over environment variables; unset values stay None."""
    values = {f.name: getattr(args, f.name) for f in fields(ConfigOverrides) if hasattr(args, f.name)}
    for name, variable in ENVIRONMENT_VARIABLES.items():
        if values.get(name) is not None:
            continue
        raw = environ.get(variable)
        if raw is None or (raw == "" and name != "config_file"):
            continue
        values[name] = _csv(raw) if name in LIST_OVERRIDES else raw
    return ConfigOverrides(**values)


# ----------------------------------------------------------------------
# Runtime
# ----------------------------------------------------------------------

def build_intents() -> discord.Intents:
    """Intents for message content, reactions and membership events."""
    intents = discord.Intents.default()
    intents.message_content = True
    intents.guilds = True
    intents.messages = True
    intents.reactions = True
    intents.members = True
    return intents


def apply_log_level(config: AppConfig) -> None:
    set_log_level(config.log_level)


async def open_context_store(config: AppConfig) -> Optional[SQLiteContextStore]:
    try:
        store = await SQLiteContextStore.open(config.aichat.data_dir)
    except ContextStoreError as exc:
        logger.error("Failed to initialize context storage, continuing without memory: %s", exc)
        return None
    try:
        await store.clean_old_context(config.aichat.max_context_age)
    except Exception as exc:
        logger.warning("Failed to clean old context: %s", exc)
    return store


async def shutdown_runtime(
    bot: discord.Bot,
    features: Sequence[FeatureProcessor],
    context_store: Optional[SQLiteContextStore],
    llm: Optional[OpenAICompletionClient],
    config_manager: ConfigManager,
) -> None:
    """Stop features, then close the bot, context store, LLM client and config watcher."""
    for feature in features:
        try:
            await feature.stop()
        except Exception as exc:
            logger.exception("Error stopping %s feature: %s", feature.name, exc)

    if not bot.is_closed():
        await bot.close()

    if context_store is not None:
        try:
            await context_store.close()
        except Exception as exc:
            logger.exception("Error closing context storage: %s", exc)

    if llm is not None:
        try:
            await llm.close()
        except Exception as exc:
            logger.exception("Error closing LLM client: %s", exc)

    await config_manager.close()
    logger.info("Shutdown complete.")


async def async_main(argv: Optional[List[str]] = None) -> int:
    """Bootstrap configuration, features and the Discord client, returning an exit code."""
    load_dotenv()
    args = build_parser().parse_args(argv)
    overrides = overrides_from(args, os.environ)

    try:
        config_manager = ConfigManager(
            overrides,
            BuildInfo(version=__version__, build_time=BUILD_TIME, environment=BUILD_ENVIRONMENT),
        )
    except ConfigError as exc:
        logger.critical("Invalid configuration: %s", exc)
        return 1

    config = config_manager.get_config()
    apply_log_level(config)
    config_manager.subscribe(apply_log_level)

    if not config.platform.token:
        logger.critical("'DISCORD_BOT_TOKEN' environment variable not set. Bot cannot start.")
        await config_manager.close()
        return 1

    bot = discord.Bot(intents=build_intents())
    platform = DiscordPlatformClient(bot)
    llm = OpenAICompletionClient(config.ai)
    config_manager.subscribe(lambda new_config: llm.apply_settings(new_config.ai))
    context_store = await open_context_store(config)

    features: List[FeatureProcessor] = [
        ResponsesFeature(config, platform),
        AIChatFeature(config, platform, llm, context_store),
        VibecheckFeature(config, platform),
    ]
    dispatcher = EventDispatcher()
    for feature in features:
        dispatcher.register(feature)
        config_manager.subscribe(feature.on_config_changed)
    event_listener.setup(bot, dispatcher, config_manager.get_config)

    exit_code = 0
    try:
        for feature in features:
            feature.start()
        await config_manager.start()
        logger.info("Attempting to connect to Discord…")
        await bot.start(config.platform.token)
    except asyncio.CancelledError:
        logger.info("Bot start cancelled; proceeding to shutdown")
    except discord.LoginFailure as exc:
        logger.critical("Discord login failed: %s", exc)
        exit_code = 1
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        await shutdown_runtime(bot, features, context_store, llm, config_manager)

    return exit_code


def main(argv: Optional[List[str]] = None) -> int:
    """Console entry point; returns the process exit code."""
    logger.info("Starting Vibecord %s…", __version__)
    try:
        return asyncio.run(async_main(argv))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except SystemExit as exit_exc:
        code = exit_exc.code
        if isinstance(code, int):
            return code
        return 0 if code is None else 1
    except Exception as exc:
        logger.critical("An unexpected error occurred while running the bot: %s", exc)
        return 1


if __name__ == "__main__":
    sys.excepthook = handle_exception
    sys.exit(main())

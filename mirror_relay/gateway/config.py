"""
Mirror Relay Configuration Management

Supports:
- YAML configuration files
- .env file loading
- Environment variable overrides
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

import yaml
from dotenv import load_dotenv

from .errors import ConfigError

logger = logging.getLogger("mirror.config")

DEFAULT_GATEWAY_URL = "wss://gateway.discord.gg/?v=10&encoding=json"
DEFAULT_INTENTS = 33281  # GUILDS | GUILD_MESSAGES | MESSAGE_CONTENT
DEFAULT_COMMAND_PREFIXES = ["!", "t!", "t?"]

_TRUTHY = {"1", "true", "yes", "on"}


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY


def parse_number(value: Any, kind: Callable[[Any], Any], name: str):
    """Convert a numeric setting, reporting bad values as ConfigError"""
    try:
        return kind(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {name}: {value!r}") from e


def parse_list(value: Any) -> List[str]:
    """Accept a YAML list or a comma separated string"""
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [part.strip() for part in str(value).split(",") if part.strip()]


@dataclass
class MirrorConfig:
    """Mirror relay configuration"""
    config_path: str = "conf/mirror.yaml"

    # Gateway settings
    token: str = ""
    gateway_url: str = DEFAULT_GATEWAY_URL
    intents: int = DEFAULT_INTENTS
    reconnect_base_delay: float = 1.0
    reconnect_max_delay: float = 60.0

    # Routing; a JSON string or an already parsed mapping
    mirror_map: Union[str, Dict[str, List[str]]] = "{}"

    # Relay feature flags
    enable_bot_indicator: bool = False
    use_webhook_profile: bool = False
    use_webhook_avatar: bool = False
    headers: Dict[str, str] = field(default_factory=dict)

    # Filters
    blocked_user_ids: List[str] = field(default_factory=list)
    command_prefixes: List[str] = field(default_factory=lambda: list(DEFAULT_COMMAND_PREFIXES))

    # Outbound HTTP
    delivery_timeout: float = 15.0
    attachment_size_limit: int = 8 * 1024 * 1024  # 8MB

    # Keep-alive server
    keep_alive: bool = True
    host: str = "0.0.0.0"
    port: int = 3000

    # Logging
    debug: bool = False
    log_file: Optional[str] = "logs/debug.log"
    error_log_file: Optional[str] = "logs/error.log"

    @classmethod
    def load(cls, config_path: str = None, env_file: Optional[str] = ".env") -> "MirrorConfig":
        """Load configuration from file and environment"""
        if env_file and os.path.exists(env_file):
            load_dotenv(dotenv_path=env_file, override=False)

        path = config_path or os.environ.get("MIRROR_CONFIG_PATH", "conf/mirror.yaml")
        config = cls(config_path=path)

        if os.path.exists(path):
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigError(f"Failed to load config from {path}: {e}") from e

            config._apply_file(cls._replace_env_vars(data))
            logger.info(f"Loaded config from {path}")

        config._apply_env(os.environ)
        return config

    def _apply_file(self, data: Dict[str, Any]):
        discord = data.get("discord", {}) or {}
        self.token = discord.get("token", self.token) or ""
        self.gateway_url = discord.get("gateway_url", self.gateway_url)
        self.intents = parse_number(discord.get("intents", self.intents), int, "discord.intents")
        reconnect = discord.get("reconnect", {}) or {}
        self.reconnect_base_delay = parse_number(
            reconnect.get("base_delay", self.reconnect_base_delay), float, "discord.reconnect.base_delay"
        )
        self.reconnect_max_delay = parse_number(
            reconnect.get("max_delay", self.reconnect_max_delay), float, "discord.reconnect.max_delay"
        )

        mirror = data.get("mirror", {}) or {}
        self.mirror_map = mirror.get("map", self.mirror_map)
        self.enable_bot_indicator = parse_bool(mirror.get("enable_bot_indicator", self.enable_bot_indicator))
        self.use_webhook_profile = parse_bool(mirror.get("use_webhook_profile", self.use_webhook_profile))
        self.use_webhook_avatar = parse_bool(mirror.get("use_webhook_avatar", self.use_webhook_avatar))
        self.headers = dict(mirror.get("headers", self.headers) or {})
        if "blocked_user_ids" in mirror:
            self.blocked_user_ids = parse_list(mirror["blocked_user_ids"])
        if "command_prefixes" in mirror:
            self.command_prefixes = parse_list(mirror["command_prefixes"])
        self.delivery_timeout = parse_number(
            mirror.get("delivery_timeout", self.delivery_timeout), float, "mirror.delivery_timeout"
        )
        self.attachment_size_limit = parse_number(
            mirror.get("attachment_size_limit", self.attachment_size_limit), int, "mirror.attachment_size_limit"
        )

        server = data.get("server", {}) or {}
        self.keep_alive = parse_bool(server.get("keep_alive", self.keep_alive))
        self.host = server.get("host", self.host)
        self.port = parse_number(server.get("port", self.port), int, "server.port")

        logging_cfg = data.get("logging", {}) or {}
        self.debug = parse_bool(logging_cfg.get("debug", self.debug))
        self.log_file = logging_cfg.get("file", self.log_file)
        self.error_log_file = logging_cfg.get("error_file", self.error_log_file)

    def _apply_env(self, env):
        """Environment variable overrides"""
        self.token = env.get("DISCORD_TOKEN", self.token)
        self.gateway_url = env.get("DISCORD_GATEWAY_URL", self.gateway_url)
        self.mirror_map = env.get("DISCORD_MIRROR_MAP", self.mirror_map)

        if "ENABLE_BOT_INDICATOR" in env:
            self.enable_bot_indicator = parse_bool(env["ENABLE_BOT_INDICATOR"])
        if "USE_WEBHOOK_PROFILE" in env:
            self.use_webhook_profile = parse_bool(env["USE_WEBHOOK_PROFILE"])
        if "USE_WEBHOOK_AVATAR" in env:
            self.use_webhook_avatar = parse_bool(env["USE_WEBHOOK_AVATAR"])
        if "DEBUG_MODE" in env:
            self.debug = parse_bool(env["DEBUG_MODE"])
        if "BLOCKED_USER_IDS" in env:
            self.blocked_user_ids = parse_list(env["BLOCKED_USER_IDS"])
        if "COMMAND_PREFIXES" in env:
            self.command_prefixes = parse_list(env["COMMAND_PREFIXES"])

        if env.get("HEADERS"):
            try:
                headers = json.loads(env["HEADERS"])
            except json.JSONDecodeError as e:
                logger.error(f"Ignoring HEADERS, not valid JSON: {e}")
            else:
                if isinstance(headers, dict):
                    self.headers = {str(k): str(v) for k, v in headers.items()}
                else:
                    logger.error("Ignoring HEADERS, expected a JSON object")

        self.host = env.get("HOST", self.host)
        self.port = parse_number(env.get("PORT", self.port), int, "PORT")

    @staticmethod
    def _replace_env_vars(obj: Any) -> Any:
        """Recursively replace environment variable references"""
        if isinstance(obj, str) and obj.startswith("${") and obj.endswith("}"):
            env_key = obj[2:-1]
            return os.environ.get(env_key, "")
        elif isinstance(obj, dict):
            return {k: MirrorConfig._replace_env_vars(v) for k, v in obj.items()}
        elif isinstance(obj, list):
            return [MirrorConfig._replace_env_vars(item) for item in obj]
        return obj

    def validate(self):
        if not self.token:
            raise ConfigError("DISCORD_TOKEN is not set")
        if self.reconnect_base_delay < 0 or self.reconnect_max_delay < 0:
            raise ConfigError("Reconnect delays must not be negative")

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary"""
        return {
            "discord": {
                "token": "***" if self.token else None,
                "gateway_url": self.gateway_url,
                "intents": self.intents,
                "reconnect": {
                    "base_delay": self.reconnect_base_delay,
                    "max_delay": self.reconnect_max_delay,
                },
            },
            "mirror": {
                # Webhook URLs embed their tokens
                "map": "***" if self.mirror_map not in ("", "{}", {}) else {},
                "enable_bot_indicator": self.enable_bot_indicator,
                "use_webhook_profile": self.use_webhook_profile,
                "use_webhook_avatar": self.use_webhook_avatar,
                "headers": {k: "***" for k in self.headers},
                "blocked_user_ids": list(self.blocked_user_ids),
                "command_prefixes": list(self.command_prefixes),
                "delivery_timeout": self.delivery_timeout,
                "attachment_size_limit": self.attachment_size_limit,
            },
            "server": {
                "keep_alive": self.keep_alive,
                "host": self.host,
                "port": self.port,
            },
            "logging": {
                "debug": self.debug,
                "file": self.log_file,
                "error_file": self.error_log_file,
            },
        }

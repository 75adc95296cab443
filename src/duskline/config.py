"""Configuration system for duskline.

Loads typing timeouts, mention candidate settings, and suggestion key
bindings from ``.dusk/config.json``. Every field is optional and falls back to
the built-in defaults.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from duskline.mentions import MAX_CANDIDATES
from duskline.presence import COMMUNITY_TYPING_TIMEOUT, DM_TYPING_TIMEOUT
from duskline.suggest import SuggestionKeys

logger = logging.getLogger(__name__)

CONFIG_DIR = ".dusk"

# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass
class TypingConfig:
    """Typing indicator timeouts, in seconds."""

    community_timeout: float = COMMUNITY_TYPING_TIMEOUT
    dm_timeout: float = DM_TYPING_TIMEOUT


@dataclass
class MentionsConfig:
    """Mention candidate settings."""

    max_candidates: int = MAX_CANDIDATES
    everyone_label: str = "everyone"


@dataclass
class DuskConfig:
    """Top-level configuration, loaded from .dusk/config.json."""

    typing: TypingConfig = field(default_factory=TypingConfig)
    mentions: MentionsConfig = field(default_factory=MentionsConfig)
    keys: SuggestionKeys = field(default_factory=SuggestionKeys)


def default_config() -> DuskConfig:
    """Return the built-in default configuration."""
    return DuskConfig()


def config_path(base: Path) -> Path:
    return base / CONFIG_DIR / "config.json"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

VALID_TYPING_KEYS = {"community_timeout", "dm_timeout"}
VALID_MENTIONS_KEYS = {"max_candidates", "everyone_label"}
VALID_KEYS_KEYS = {"confirm", "next", "previous", "cancel"}
VALID_TOP_KEYS = {"typing", "mentions", "keys"}


def check_unknown_keys(data: dict, valid: set[str], context: str) -> None:
    """Raise ValueError if data contains keys not in valid set."""
    unknown = set(data) - valid
    if unknown:
        raise ValueError(f"Unknown keys in {context}: {', '.join(sorted(unknown))}")


def validate_typing(data: dict) -> TypingConfig:
    """Validate and construct a TypingConfig from a raw dict."""
    check_unknown_keys(data, VALID_TYPING_KEYS, "typing")
    defaults = TypingConfig()
    values: dict[str, float] = {}
    for key in ("community_timeout", "dm_timeout"):
        val = data.get(key, getattr(defaults, key))
        # bool is an int subclass; reject it explicitly
        if isinstance(val, bool) or not isinstance(val, int | float):
            raise ValueError(f"typing.{key} must be a number, got {type(val).__name__}")
        if val <= 0:
            raise ValueError(f"typing.{key} must be positive, got {val}")
        values[key] = float(val)
    return TypingConfig(**values)


def validate_mentions(data: dict) -> MentionsConfig:
    """Validate and construct a MentionsConfig from a raw dict."""
    check_unknown_keys(data, VALID_MENTIONS_KEYS, "mentions")

    max_candidates = data.get("max_candidates", MAX_CANDIDATES)
    if isinstance(max_candidates, bool) or not isinstance(max_candidates, int):
        raise ValueError(f"mentions.max_candidates must be an integer, got {type(max_candidates).__name__}")
    if max_candidates < 1:
        raise ValueError(f"mentions.max_candidates must be at least 1, got {max_candidates}")

    everyone_label = data.get("everyone_label", "everyone")
    if not isinstance(everyone_label, str):
        raise ValueError(f"mentions.everyone_label must be a string, got {type(everyone_label).__name__}")
    if not everyone_label.strip():
        raise ValueError("mentions.everyone_label must not be empty")

    return MentionsConfig(max_candidates=max_candidates, everyone_label=everyone_label)


def validate_keys(data: dict) -> SuggestionKeys:
    """Validate and construct SuggestionKeys from a raw dict.

    Each action takes a non-empty list of key names, and a key may only be
    bound to one action.
    """
    check_unknown_keys(data, VALID_KEYS_KEYS, "keys")
    defaults = SuggestionKeys()
    bindings: dict[str, list[str]] = {}
    for action in ("confirm", "next", "previous", "cancel"):
        keys = data.get(action, getattr(defaults, action))
        if not isinstance(keys, list):
            raise ValueError(f"keys.{action} must be a list, got {type(keys).__name__}")
        if not keys:
            raise ValueError(f"keys.{action} must not be empty")
        for i, key in enumerate(keys):
            if not isinstance(key, str) or not key:
                raise ValueError(f"keys.{action}[{i}] must be a non-empty string")
        bindings[action] = keys

    seen: dict[str, str] = {}
    for action, keys in bindings.items():
        for key in keys:
            if key in seen and seen[key] != action:
                raise ValueError(f"Key '{key}' is bound to both keys.{seen[key]} and keys.{action}")
            seen[key] = action

    return SuggestionKeys(**bindings)


def validate_config(data: dict) -> DuskConfig:
    """Validate a raw dict and construct a DuskConfig.

    Raises:
        ValueError: On unknown keys, type errors, or conflicting key bindings.
    """
    check_unknown_keys(data, VALID_TOP_KEYS, "config")

    sections: dict[str, dict] = {}
    for name in ("typing", "mentions", "keys"):
        section = data.get(name, {})
        if not isinstance(section, dict):
            raise ValueError(f"{name} must be an object, got {type(section).__name__}")
        sections[name] = section

    return DuskConfig(
        typing=validate_typing(sections["typing"]),
        mentions=validate_mentions(sections["mentions"]),
        keys=validate_keys(sections["keys"]),
    )


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_config(base: Path) -> DuskConfig:
    """Load configuration from .dusk/config.json, falling back to defaults.

    Returns default_config() if the file doesn't exist or is empty.

    Raises:
        ValueError: If the file exists but contains invalid JSON or fails
            validation.
    """
    path = config_path(base)
    if not path.exists():
        return default_config()

    logger.debug("Loading config from %s", path)
    text = path.read_text(encoding="utf-8").strip()
    if not text or text == "{}":
        return default_config()

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"Config must be a JSON object, got {type(data).__name__}")

    return validate_config(data)

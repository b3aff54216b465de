"""Configuration of the crash triage modules.

Settings come from a JSON file. The file location and a few overrides can be
given through the environment or a ``.env`` file:

- ``CRASH_TRIAGE_CONFIG``: path of the JSON file
- ``CRASH_TRIAGE_MAX_ATTACHMENT_BYTES``: byte cap for reading attachments
- ``CRASH_TRIAGE_MAPPINGS_DIR``: directory with deobfuscation mapping files
- ``CRASH_TRIAGE_DOWNLOAD_MAPPINGS``: ``1`` or ``true`` to fetch missing mapping files
"""
from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv

from .collector import DEFAULT_MAX_ATTACHMENT_BYTES
from .models import CrashCategory, CrashSignatureRule

ENV_CONFIG_PATH = "CRASH_TRIAGE_CONFIG"
ENV_MAX_ATTACHMENT_BYTES = "CRASH_TRIAGE_MAX_ATTACHMENT_BYTES"
ENV_MAPPINGS_DIR = "CRASH_TRIAGE_MAPPINGS_DIR"
ENV_DOWNLOAD_MAPPINGS = "CRASH_TRIAGE_DOWNLOAD_MAPPINGS"

DEFAULT_CONFIG_NAME = "crash_triage.json"


class ConfigError(Exception):
    """The configuration is missing or invalid."""


@dataclass
class TriageConfig:
    """Settings shared by the crash triage entry points."""
    crash_extensions: List[str]
    signature_rules: List[CrashSignatureRule] = field(default_factory=list)
    duplicate_message: str = "duplicate-tech"
    modded_message: str = "modified-game"
    missing_crash_message: str = "include-crash"
    max_attachment_bytes: int = DEFAULT_MAX_ATTACHMENT_BYTES
    mappings_dir: Optional[Path] = None
    download_mappings: bool = False


def _rule(entry: Any, category: Optional[str], regex_key: str, where: str) -> CrashSignatureRule:
    if not isinstance(entry, dict):
        raise ConfigError(f"{where}: expected an object, got {type(entry).__name__}")
    category = category or entry.get("type")
    pattern = entry.get(regex_key)
    duplicates = entry.get("duplicates")
    if not category or not pattern or not duplicates:
        raise ConfigError(f"{where}: 'type', '{regex_key}' and 'duplicates' are required")
    try:
        return CrashSignatureRule(str(category), str(pattern), str(duplicates))
    except re.error as e:
        raise ConfigError(f"{where}: invalid regex {pattern!r}: {e}") from e


def parse_rules(data: Dict[str, Any]) -> List[CrashSignatureRule]:
    """Signature rules in configured order."""
    sections = [
        ("crash_duplicates", None, "exception_regex"),
        ("minecraft_crash_duplicates", CrashCategory.ENGINE_CRASH.value, "exception_regex"),
        ("jvm_crash_duplicates", CrashCategory.GENERIC_JVM.value, "library_name_regex"),
    ]
    rules: List[CrashSignatureRule] = []
    for key, category, regex_key in sections:
        entries = data.get(key, [])
        if not isinstance(entries, list):
            raise ConfigError(f"'{key}' must be a list")
        for index, entry in enumerate(entries):
            rules.append(_rule(entry, category, regex_key, f"{key}[{index}]"))
    return rules


def _positive_int(value: Any, name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"'{name}' must be an integer, got {value!r}") from e
    if number <= 0:
        raise ConfigError(f"'{name}' must be positive, got {number}")
    return number


def parse_config(data: Dict[str, Any]) -> TriageConfig:
    if not isinstance(data, dict):
        raise ConfigError("configuration must be a JSON object")

    extensions = data.get("crash_extensions")
    if not isinstance(extensions, list) or not all(isinstance(e, str) for e in extensions):
        raise ConfigError("'crash_extensions' must be a list of strings")

    config = TriageConfig(crash_extensions=list(extensions), signature_rules=parse_rules(data))
    for key in ("duplicate_message", "modded_message", "missing_crash_message"):
        if key in data:
            setattr(config, key, str(data[key]))
    if "max_attachment_bytes" in data:
        config.max_attachment_bytes = _positive_int(data["max_attachment_bytes"], "max_attachment_bytes")
    if data.get("mappings_dir"):
        config.mappings_dir = Path(data["mappings_dir"])
    if "download_mappings" in data:
        config.download_mappings = bool(data["download_mappings"])
    return config


def load_config(path: Union[str, Path]) -> TriageConfig:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read configuration {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e
    return parse_config(data)


def load_config_from_env(path: Optional[Union[str, Path]] = None) -> TriageConfig:
    """Load the configuration, applying environment overrides.

    ``path`` wins over ``CRASH_TRIAGE_CONFIG``; without either,
    ``crash_triage.json`` in the working directory is used.
    """
    env_path = Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(env_path)
    else:
        load_dotenv()
    config_path = path or os.environ.get(ENV_CONFIG_PATH) or DEFAULT_CONFIG_NAME
    config = load_config(config_path)

    max_bytes = os.environ.get(ENV_MAX_ATTACHMENT_BYTES)
    if max_bytes:
        config.max_attachment_bytes = _positive_int(max_bytes, ENV_MAX_ATTACHMENT_BYTES)
    mappings_dir = os.environ.get(ENV_MAPPINGS_DIR)
    if mappings_dir:
        config.mappings_dir = Path(mappings_dir)
    download = os.environ.get(ENV_DOWNLOAD_MAPPINGS)
    if download:
        config.download_mappings = download.strip().lower() in ("1", "true", "yes")
    return config

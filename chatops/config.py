"""Configuration for the command engine.

Provides the processor options (directories, extensions, user-facing
messages) and the optional per-command YAML descriptor.

Environment Variables:
    CHATOPS_COMMANDS_DIR: Directory scanned for command files (default: 'commands')
    CHATOPS_TEMPLATES_DIR: Directory of template fragments (default: 'templates')
    CHATOPS_COMMAND_EXT: Command file extension (default: '.tmpl')
    CHATOPS_CONFIG_EXT: Descriptor file extension (default: '.yml')
    CHATOPS_DESCRIPTION: Description of the command group
    CHATOPS_ERROR: Message shown to users when a command fails
    CHATOPS_DEFERRED_WORKERS: Max concurrently running deferred posts (default: 8)
"""

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from .models import ExecuteParams, Field

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "Something went wrong, please check the logs"

# Names templates could not read as params.<name>
RESERVED_PARAM_NAMES = frozenset(n for n in dir(ExecuteParams) if not n.startswith("_"))


@dataclass
class ProcessorOptions:
    """Options shared by every command of a registry.

    Attributes:
        commands_dir: Directory holding command files
        templates_dir: Directory holding template fragments
        command_ext: Extension of command files, including the dot
        config_ext: Extension of descriptor files; empty disables descriptors
        description: Description of the command group
        error: Generic message returned to users when a command fails
        max_deferred_workers: Cap on concurrently running deferred posts
    """

    commands_dir: str = "commands"
    templates_dir: str = "templates"
    command_ext: str = ".tmpl"
    config_ext: str = ".yml"
    description: str = ""
    error: str = DEFAULT_ERROR_MESSAGE
    max_deferred_workers: int = 8

    @classmethod
    def from_env(cls) -> "ProcessorOptions":
        """Build options from CHATOPS_* environment variables.

        Returns:
            ProcessorOptions instance
        """
        defaults = cls()
        workers = os.getenv("CHATOPS_DEFERRED_WORKERS", "")
        return cls(
            commands_dir=os.getenv("CHATOPS_COMMANDS_DIR", defaults.commands_dir),
            templates_dir=os.getenv("CHATOPS_TEMPLATES_DIR", defaults.templates_dir),
            command_ext=os.getenv("CHATOPS_COMMAND_EXT") or defaults.command_ext,
            config_ext=os.getenv("CHATOPS_CONFIG_EXT", defaults.config_ext),
            description=os.getenv("CHATOPS_DESCRIPTION", defaults.description),
            error=os.getenv("CHATOPS_ERROR", defaults.error),
            max_deferred_workers=int(workers) if workers else defaults.max_deferred_workers,
        )


@dataclass(frozen=True)
class ResponseConfig:
    """Response presentation flags of a command."""

    visible: bool = False
    original: bool = False
    duration: bool = False


@dataclass(frozen=True)
class CommandConfig:
    """Declarative descriptor loaded from the sibling YAML file of a command."""

    description: str = ""
    params: List[str] = field(default_factory=list)
    aliases: List[str] = field(default_factory=list)
    response: ResponseConfig = field(default_factory=ResponseConfig)
    fields: List[Field] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommandConfig":
        """Create from a parsed YAML mapping.

        Keys are matched case-insensitively, so both `Description` and
        `description` are accepted.

        Args:
            data: Parsed YAML document

        Returns:
            CommandConfig instance

        Raises:
            ValueError: If the document is not a mapping or declares an invalid
                param name or pattern
        """
        if not isinstance(data, dict):
            raise ValueError(f"descriptor must be a mapping, got {type(data).__name__}")

        values = _lower_keys(data)
        response = _lower_keys(values.get("response") or {})
        return cls(
            description=str(values.get("description") or ""),
            params=[_parse_param(str(p)) for p in values.get("params") or []],
            aliases=[str(a) for a in values.get("aliases") or []],
            response=ResponseConfig(
                visible=bool(response.get("visible", False)),
                original=bool(response.get("original", False)),
                duration=bool(response.get("duration", False)),
            ),
            fields=[_parse_field(f) for f in values.get("fields") or []],
        )


def _lower_keys(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict):
        return {}
    return {str(k).lower(): v for k, v in data.items()}


def _parse_param(param: str) -> str:
    if "(?P<" in param:
        try:
            names = list(re.compile(param).groupindex)
        except re.error as e:
            raise ValueError(f"invalid param pattern {param!r}: {e}") from e
    else:
        names = [param]

    for name in names:
        if not name.isidentifier():
            raise ValueError(f"invalid param name {name!r}")
        if name in RESERVED_PARAM_NAMES:
            raise ValueError(f"param name {name!r} is reserved")
    return param


def _parse_field(item: Any) -> Field:
    if isinstance(item, dict):
        values = _lower_keys(item)
        return Field(label=str(values.get("label", "")), value=str(values.get("value", "")))
    return Field(label=str(item))


def load_command_config(path: str) -> Optional[CommandConfig]:
    """Load a command descriptor.

    Args:
        path: Path to the YAML descriptor

    Returns:
        CommandConfig, or None if the file does not exist or is empty

    Raises:
        yaml.YAMLError: If the file is not valid YAML
        ValueError: If the document is not a mapping or has invalid params
        OSError: If the file cannot be read
    """
    if not os.path.exists(path):
        return None

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if data is None:
        return None

    config = CommandConfig.from_dict(data)
    logger.debug(f"Loaded command descriptor {path}")
    return config

"""Command registry for discovering and holding template commands.

This module provides the registry that scans a commands directory, loads
optional descriptors, compiles every command template at load time and
groups the resulting commands under the registry name.
"""

import logging
import os
from typing import Dict, List, Optional

from .command import Command
from .config import ProcessorOptions, load_command_config
from .dispatcher import DeferredPostDispatcher
from .errors import CommandLoadError, TemplateLoadError
from .interfaces import IMeter
from .metrics import Meter
from .rendering import TemplateRenderer

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Registry for all commands of one group.

    The registry keeps commands in insertion order and provides lookup by
    name or alias. An empty name means the commands are not grouped.

    Example:
        registry = CommandRegistry("k8s", ProcessorOptions(commands_dir="/srv/commands"))
        registry.load()

        command = registry.get("pods")
        if command:
            context, text, attachments = command.execute(bot, user, params)
    """

    def __init__(
        self,
        name: str = "",
        options: Optional[ProcessorOptions] = None,
        meter: Optional[IMeter] = None,
        renderer: Optional[TemplateRenderer] = None,
        dispatcher: Optional[DeferredPostDispatcher] = None,
    ):
        """Initialize empty registry.

        Args:
            name: Group name, empty for ungrouped commands
            options: Processor options, defaults when omitted
            meter: Metrics backend, a private Meter when omitted
            renderer: Template renderer, a new one when omitted
            dispatcher: Deferred post dispatcher, a new bounded pool when omitted
        """
        self.name = name
        self.options = options or ProcessorOptions()
        self.meter = meter or Meter()
        self.renderer = renderer or TemplateRenderer()
        self.dispatcher = dispatcher or DeferredPostDispatcher(
            max_workers=self.options.max_deferred_workers
        )
        self._commands: List[Command] = []
        self._by_name: Dict[str, Command] = {}
        self._aliases: Dict[str, str] = {}

    @property
    def description(self) -> str:
        return self.options.description

    def _config_path(self, name: str, path: str) -> str:
        return os.path.join(os.path.dirname(path), f"{name}{self.options.config_ext}")

    def _create_command(self, name: str, path: str) -> Command:
        config = None
        if self.options.config_ext:
            config_path = self._config_path(name, path)
            try:
                config = load_command_config(config_path)
            except Exception as e:
                logger.error(f"Couldn't read config {config_path}, error {e}")

        template_name = name if not self.name else f"{self.name}_{name}"
        try:
            template = self.renderer.compile(path, name=f"default-internal-{template_name}")
        except TemplateLoadError as e:
            raise CommandLoadError(f"Command file {path}: {e}") from e

        return Command(name, path, self, template, config)

    def add_command(self, name: str, path: str) -> Command:
        """Compile and register a command.

        Args:
            name: Command name
            path: Path to the command template file

        Returns:
            Registered command

        Raises:
            CommandLoadError: If the template cannot be read or compiled, or a
                command with the same name is already registered
        """
        try:
            if name in self._by_name:
                raise CommandLoadError(
                    f"Command {name} from {path} already registered from "
                    f"{self._by_name[name].path}"
                )
            command = self._create_command(name, path)
        except CommandLoadError as e:
            logger.error(str(e))
            raise

        self._commands.append(command)
        self._by_name[command.name] = command
        for alias in command.aliases:
            self._aliases[alias] = command.name

        logger.debug(f"Registered command: {command.name_with_group('/')}")
        return command

    def load(self) -> int:
        """Register every command file found under the commands directory.

        Files are picked by the command extension, recursively and in path
        order. A file that fails to load is logged and skipped; of files sharing
        a name, the first in path order wins.

        Returns:
            Number of commands registered
        """
        ext = self.options.command_ext
        if not ext:
            logger.error("Command file extension is empty, not scanning for commands")
            return 0

        root = self.options.commands_dir
        if not os.path.isdir(root):
            logger.warning(f"Commands directory {root} not found")
            return 0

        paths = []
        for dirpath, _, filenames in os.walk(root):
            for filename in filenames:
                if filename.endswith(ext) and len(filename) > len(ext):
                    paths.append(os.path.join(dirpath, filename))

        count = 0
        for path in sorted(paths):
            name = os.path.basename(path)[: -len(ext)]
            try:
                self.add_command(name, path)
                count += 1
            except CommandLoadError:
                continue

        logger.info(f"Loaded {count} command(s) from {root}")
        return count

    def commands(self) -> List[Command]:
        """Get registered commands in insertion order.

        Returns:
            List of commands
        """
        return list(self._commands)

    def get(self, name: str) -> Optional[Command]:
        """Get a command by name or alias.

        Args:
            name: Command name or alias

        Returns:
            Command instance or None if not found
        """
        if name in self._by_name:
            return self._by_name[name]

        if name in self._aliases:
            return self._by_name.get(self._aliases[name])

        return None

    def list_commands(self) -> List[str]:
        """List all registered command names.

        Returns:
            Sorted list of command names
        """
        return sorted(self._by_name.keys())

    def get_help_text(self) -> str:
        """Generate help text for the registered commands.

        Returns:
            Formatted help text
        """
        title = f"**{self.name} Commands:**" if self.name else "**Available Commands:**"
        lines = [title, ""]
        if self.description:
            lines.extend([self.description, ""])
        for name in self.list_commands():
            command = self._by_name[name]
            lines.append(f"  `{command.name_with_group(' ')}` - {command.description}")
        return "\n".join(lines)

    def shutdown(self, wait: bool = True) -> None:
        """Stop the deferred post dispatcher.

        Args:
            wait: Whether to block until running deferred posts finish
        """
        self.dispatcher.shutdown(wait=wait)

"""Template-backed commands.

A Command is an immutable, named unit compiled from a template file, with an
optional declarative descriptor. Executing it creates a fresh
ExecutionContext, so a single Command can be executed concurrently.
"""

import logging
from typing import TYPE_CHECKING, List, Mapping, Optional, Tuple

from jinja2 import Template

from .config import CommandConfig, ProcessorOptions, ResponseConfig
from .context import ExecutionContext
from .errors import CommandExecutionError
from .models import Attachment, Field

if TYPE_CHECKING:
    from .dispatcher import DeferredPostDispatcher
    from .interfaces import IBot, IMeter, IUser
    from .registry import CommandRegistry
    from .rendering import TemplateRenderer

logger = logging.getLogger(__name__)

# Max positional arguments accepted by commands without declared params
DEFAULT_PARAMS_COUNT = 10


def default_params(count: int = DEFAULT_PARAMS_COUNT) -> List[str]:
    """Build the positional parameter scheme.

    Each pattern requires one more whitespace-separated token than the
    previous one and captures it as p0, p1, ...

    Args:
        count: Number of patterns

    Returns:
        List of regular expressions
    """
    patterns = []
    pattern = ""
    for i in range(count):
        group = f"(?P<p{i}>\\S+)"
        pattern = group if not pattern else f"{pattern}\\s+{group}"
        patterns.append(pattern)
    return patterns


class Command:
    """A compiled, named template unit.

    Example:
        command = registry.get("deploy")
        context, text, attachments = command.execute(bot, user, {"p0": "prod"})
        bot.post(channel_id, text, attachments)
        context.after(message, channel)
    """

    def __init__(
        self,
        name: str,
        path: str,
        registry: "CommandRegistry",
        template: Template,
        config: Optional[CommandConfig] = None,
    ):
        """Initialize command.

        Args:
            name: Command name
            path: Path to the command template file
            registry: Registry the command belongs to (its name is the group)
            template: Compiled template, shared by all executions
            config: Optional descriptor
        """
        self._name = name
        self._path = path
        self._registry = registry
        self._template = template
        self._config = config

    @property
    def name(self) -> str:
        return self._name

    @property
    def path(self) -> str:
        return self._path

    @property
    def config(self) -> Optional[CommandConfig]:
        return self._config

    @property
    def group(self) -> str:
        return self._registry.name

    @property
    def template(self) -> Template:
        return self._template

    @property
    def options(self) -> ProcessorOptions:
        return self._registry.options

    @property
    def renderer(self) -> "TemplateRenderer":
        return self._registry.renderer

    @property
    def meter(self) -> "IMeter":
        return self._registry.meter

    @property
    def dispatcher(self) -> "DeferredPostDispatcher":
        return self._registry.dispatcher

    def name_with_group(self, delim: str) -> str:
        """Get the name qualified with the group.

        Args:
            delim: Separator between group and name

        Returns:
            `group<delim>name`, or just the name for an ungrouped registry
        """
        if self.group:
            return f"{self.group}{delim}{self._name}"
        return self._name

    @property
    def description(self) -> str:
        return self._config.description if self._config else ""

    @property
    def params(self) -> List[str]:
        """Declared parameter names, or the positional scheme p0..p9."""
        if self._config and self._config.params:
            return list(self._config.params)
        return default_params()

    @property
    def aliases(self) -> List[str]:
        return list(self._config.aliases) if self._config else []

    @property
    def fields(self) -> List[Field]:
        return list(self._config.fields) if self._config else []

    @property
    def response(self) -> ResponseConfig:
        return self._config.response if self._config else ResponseConfig()

    def execute(
        self, bot: "IBot", user: "IUser", params: Optional[Mapping[str, str]] = None
    ) -> Tuple[ExecutionContext, str, List[Attachment]]:
        """Execute the command.

        The template sees `params`, `bot`, `user` and `name` (group/command).

        Args:
            bot: Transport the invocation came from
            user: Invoking user
            params: Extracted invocation parameters

        Returns:
            Tuple of (context, text, attachments). The context is needed to
            dispatch deferred posts with after() once the reply is delivered.

        Raises:
            CommandExecutionError: With the operator-configured message if
                rendering failed; the original error is chained as __cause__
        """
        context = ExecutionContext(self, bot, user, params)
        data = {
            "params": context.params,
            "bot": bot,
            "user": user,
            "name": self.name_with_group("/"),
        }

        try:
            text, attachments = context.execute(self._template, data)
        except Exception as e:
            logger.error(f"Command {self.name_with_group('/')} failed: {e}", exc_info=True)
            raise CommandExecutionError(self.options.error) from e

        return context, text, attachments

    def get_help(self) -> str:
        """Get help text for this command.

        Returns:
            Formatted help text
        """
        return f"**/{self.name_with_group(' ')}** - {self.description}"

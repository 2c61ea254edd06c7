"""Template compilation and rendering.

Templates are Jinja2 sources rendered in a sandboxed environment. The
environment carries no globals of its own: everything a template can call is
passed in per render as the function table of the current execution context,
so a compiled template holds no per-invocation state and can be shared by
concurrent renders.
"""

import logging
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Set, Tuple

from jinja2 import Template, TemplateError
from jinja2.exceptions import SecurityError
from jinja2.sandbox import SandboxedEnvironment

from .errors import TemplateLoadError
from .interfaces import IBot, IChannel, IMessage, IUser

logger = logging.getLogger(__name__)

# Attributes templates may reach on chat collaborators
EXPOSED_ATTRIBUTES: Tuple[Tuple[type, FrozenSet[str]], ...] = (
    (IBot, frozenset({"name"})),
    (IUser, frozenset({"id"})),
    (IChannel, frozenset({"id"})),
    (IMessage, frozenset({"id"})),
)


class CommandSandbox(SandboxedEnvironment):
    """Sandbox that limits chat collaborators to their interface methods.

    Bots, users, channels and messages reach templates as live objects.
    Only the methods listed in EXPOSED_ATTRIBUTES are visible on them, so
    transport internals such as API clients stay out of reach. Any unsafe
    attribute access fails the render instead of printing empty.
    """

    def is_safe_attribute(self, obj: Any, attr: str, value: Any) -> bool:
        if not super().is_safe_attribute(obj, attr, value):
            return False
        if isinstance(obj, Mapping):
            return True

        allowed: Optional[Set[str]] = None
        for protocol, names in EXPOSED_ATTRIBUTES:
            if isinstance(obj, protocol):
                allowed = (allowed or set()) | names
        return allowed is None or attr in allowed

    def unsafe_undefined(self, obj: Any, attribute: str) -> Any:
        raise SecurityError(
            f"access to attribute {attribute!r} of {type(obj).__name__!r} object is unsafe"
        )


class TemplateRenderer:
    """Compiles template files and renders them against a data object.

    Example:
        renderer = TemplateRenderer()
        template = renderer.compile("/srv/commands/ping.tmpl")
        text = renderer.render(template, {"name": "ping"}, context.functions())
    """

    def __init__(self):
        """Initialize sandboxed environment without default globals."""
        self.environment = CommandSandbox(
            autoescape=False,
            keep_trailing_newline=True,
        )
        self.environment.globals.clear()

    def compile(self, path: str, name: Optional[str] = None) -> Template:
        """Read and compile a template file.

        Args:
            path: Path to the template file
            name: Optional template name used in error messages

        Returns:
            Compiled template

        Raises:
            TemplateLoadError: If the file cannot be read or does not compile
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                source = f.read()
        except OSError as e:
            raise TemplateLoadError(f"couldn't read template {path}: {e}") from e

        try:
            code = self.environment.compile(source, name=name or path, filename=path)
        except TemplateError as e:
            raise TemplateLoadError(f"couldn't compile template {path}: {e}") from e

        return self.environment.template_class.from_code(
            self.environment, code, self.environment.make_globals(None), None
        )

    def render(
        self, template: Template, data: Any, functions: Mapping[str, Callable[..., Any]]
    ) -> str:
        """Render a compiled template.

        The data object is available as `data`; when it is a mapping its keys
        are also top-level variables. Function names always win over data keys.

        Args:
            template: Compiled template
            data: Data object to render with
            functions: Function table exposed to the template

        Returns:
            Rendered text (not stripped)
        """
        variables: Dict[str, Any] = {"data": data}
        if isinstance(data, Mapping):
            variables.update(data)
        variables.update(functions)
        return template.render(variables)

    def render_file(
        self, path: str, data: Any, functions: Mapping[str, Callable[..., Any]]
    ) -> str:
        """Compile and render a template file in one step.

        Args:
            path: Path to the template file
            data: Data object to render with
            functions: Function table exposed to the template

        Returns:
            Rendered text (not stripped)

        Raises:
            TemplateLoadError: If the file cannot be read or does not compile
        """
        template = self.compile(path)
        logger.debug(f"Rendering template file {path}")
        return self.render(template, data, functions)

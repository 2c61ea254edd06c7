"""Per-invocation execution context.

An ExecutionContext holds all mutable state produced while one command
invocation renders: collected attachments, recorded deferred posts and the
response flags. It also provides the closed set of functions a template can
call. The context is created fresh for every invocation and passed into the
render explicitly as the function table, so concurrent invocations of the
same command never share state, while nested renders (runFile, runCommand,
runTemplate) accumulate into the context of their caller.
"""

import logging
import os
import time
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Tuple

from jinja2 import Template

from .errors import SendMessageError
from .models import Attachment, DeferredPost, ExecuteParams

if TYPE_CHECKING:
    from .command import Command
    from .interfaces import IBot, IChannel, IMessage, IUser

logger = logging.getLogger(__name__)

METRIC_PREFIXES = ("default", "processor")


class HostOperation(Enum):
    """Functions exposed to templates, by the name templates call them."""

    CREATE_ATTACHMENT = "createAttachment"
    ADD_ATTACHMENT = "addAttachment"
    RUN_FILE = "runFile"
    RUN_COMMAND = "runCommand"
    RUN_TEMPLATE = "runTemplate"
    POST_FILE = "postFile"
    POST_COMMAND = "postCommand"
    POST_TEMPLATE = "postTemplate"
    SEND_MESSAGE = "sendMessage"
    SEND_MESSAGE_EX = "sendMessageEx"
    SET_INVISIBLE = "setInvisible"
    SET_ERROR = "setError"
    GET_BOT = "getBot"
    GET_USER = "getUser"
    GET_PARAMS = "getParams"
    GET_MESSAGE = "getMessage"
    GET_CHANNEL = "getChannel"


_OPERATION_METHODS: Dict[HostOperation, str] = {
    HostOperation.CREATE_ATTACHMENT: "create_attachment",
    HostOperation.ADD_ATTACHMENT: "add_attachment",
    HostOperation.RUN_FILE: "run_file",
    HostOperation.RUN_COMMAND: "run_command",
    HostOperation.RUN_TEMPLATE: "run_template",
    HostOperation.POST_FILE: "post_file",
    HostOperation.POST_COMMAND: "post_command",
    HostOperation.POST_TEMPLATE: "post_template",
    HostOperation.SEND_MESSAGE: "send_message",
    HostOperation.SEND_MESSAGE_EX: "send_message_ex",
    HostOperation.SET_INVISIBLE: "set_invisible",
    HostOperation.SET_ERROR: "set_error",
    HostOperation.GET_BOT: "get_bot",
    HostOperation.GET_USER: "get_user",
    HostOperation.GET_PARAMS: "get_params",
    HostOperation.GET_MESSAGE: "get_message",
    HostOperation.GET_CHANNEL: "get_channel",
}


class ExecutionContext:
    """Isolated state and function surface of one command invocation.

    Attributes:
        command: Command being executed
        bot: Transport the invocation came from
        user: Invoking user
        params: Extracted invocation parameters
        message: Delivered primary reply, set only for deferred posts
        channel: Channel of the primary reply, set only for deferred posts
    """

    def __init__(
        self,
        command: "Command",
        bot: "IBot",
        user: "IUser",
        params: Optional[Mapping[str, str]] = None,
        message: Optional["IMessage"] = None,
        channel: Optional["IChannel"] = None,
    ):
        """Initialize execution context.

        Args:
            command: Command being executed
            bot: Transport the invocation came from
            user: Invoking user
            params: Extracted invocation parameters
            message: Delivered primary reply (deferred posts only)
            channel: Channel of the primary reply (deferred posts only)
        """
        self.command = command
        self.bot = bot
        self.user = user
        self.params = params if isinstance(params, ExecuteParams) else ExecuteParams(params)
        self.message = message
        self.channel = channel
        self._attachments: List[Attachment] = []
        self._posts: List[DeferredPost] = []
        self._visible: Optional[bool] = None
        self._error: Optional[bool] = None

    # Response flags

    @property
    def visible(self) -> bool:
        """Whether the transport should post the response."""
        if self._visible is not None:
            return self._visible
        return self.command.response.visible

    @property
    def suppressed(self) -> bool:
        """Whether the template called setInvisible()."""
        return self._visible is False

    @property
    def error(self) -> bool:
        """Whether the response should be styled as an error."""
        return bool(self._error)

    @property
    def duration(self) -> bool:
        """Whether the transport should show the execution time."""
        return self.command.response.duration

    @property
    def original(self) -> bool:
        """Whether the transport should quote the original request."""
        return self.command.response.original

    @property
    def deferred_posts(self) -> List[DeferredPost]:
        """Deferred posts recorded so far and not yet dispatched."""
        return list(self._posts)

    # Template functions

    def functions(self) -> Dict[str, Callable[..., Any]]:
        """Get the function table bound to this context.

        Returns:
            Mapping of template function name to bound method
        """
        return {op.value: getattr(self, method) for op, method in _OPERATION_METHODS.items()}

    def _file_path(self, directory: str, file_name: str) -> str:
        return os.path.join(directory, file_name)

    def create_attachment(self, title: str, text: str, data: Any, typ: Any = "file") -> Attachment:
        return Attachment.build(title, text, data, typ)

    def add_attachment(self, title: str, text: str, data: Any, typ: Any = "file") -> str:
        self._attachments.append(Attachment.build(title, text, data, typ))
        return ""

    def run_file(self, path: str, data: Any = None) -> str:
        return self.command.renderer.render_file(path, data, self.functions())

    def run_command(self, file_name: str, data: Any = None) -> str:
        return self.run_file(self._file_path(self.command.options.commands_dir, file_name), data)

    def run_template(self, file_name: str, data: Any = None) -> str:
        return self.run_file(self._file_path(self.command.options.templates_dir, file_name), data)

    def post_file(self, path: str, data: Any = None) -> str:
        name, _ = os.path.splitext(os.path.basename(path))
        self._posts.append(DeferredPost(name=name, path=path, payload=data))
        return ""

    def post_command(self, file_name: str, data: Any = None) -> str:
        return self.post_file(self._file_path(self.command.options.commands_dir, file_name), data)

    def post_template(self, file_name: str, data: Any = None) -> str:
        return self.post_file(self._file_path(self.command.options.templates_dir, file_name), data)

    def send_message_ex(
        self, text: str, channels: str, params: Optional[Mapping[str, Any]] = None
    ) -> str:
        """Send a message to every channel of a comma-separated list.

        Delivery to each channel is attempted even if an earlier one failed.

        Args:
            text: Message text
            channels: Comma-separated channel ids
            params: Optional `attachment` (Attachment) and `attachments` (list)

        Returns:
            Empty string

        Raises:
            SendMessageError: If text or channels are empty, or any delivery failed
        """
        if not text or not str(text).strip():
            raise SendMessageError("sendMessageEx: empty message")

        if not channels or not str(channels).strip():
            raise SendMessageError("sendMessageEx: no channels")

        targets = [c.strip() for c in str(channels).split(",") if c.strip()]
        if not targets:
            raise SendMessageError("sendMessageEx: no channels")

        attachments: List[Attachment] = []
        if params:
            attachment = params.get("attachment")
            if isinstance(attachment, Attachment):
                attachments.append(attachment)
            for item in params.get("attachments") or []:
                if isinstance(item, Attachment):
                    attachments.append(item)

        first_error: Optional[Exception] = None
        for channel_id in targets:
            try:
                self.bot.post(channel_id, text, attachments, None)
            except Exception as e:
                logger.error(f"Failed to send message to {channel_id}: {e}")
                if first_error is None:
                    first_error = e

        if first_error is not None:
            raise SendMessageError(f"sendMessageEx: {first_error}") from first_error
        return ""

    def send_message(self, text: str, channels: str) -> str:
        return self.send_message_ex(text, channels, None)

    def set_invisible(self) -> str:
        self._visible = False
        return ""

    def set_error(self) -> str:
        self._error = True
        return ""

    def get_bot(self) -> "IBot":
        return self.bot

    def get_user(self) -> "IUser":
        return self.user

    def get_params(self) -> ExecuteParams:
        return self.params

    def get_message(self) -> Optional["IMessage"]:
        return self.message

    def get_channel(self) -> Optional["IChannel"]:
        return self.channel

    # Render pipeline

    def render(self, template: Template, data: Any) -> Tuple[str, List[Attachment]]:
        """Render a template within this context.

        Attachments collected during the render are handed to the caller.
        Deferred posts stay on the context until after() dispatches them.
        On failure everything collected during the render is discarded.

        Args:
            template: Compiled template
            data: Data object to render with

        Returns:
            Tuple of (stripped text, attachments)
        """
        try:
            text = self.command.renderer.render(template, data, self.functions())
        except Exception:
            self._attachments.clear()
            self._posts.clear()
            raise

        attachments, self._attachments = self._attachments, []
        return text.strip(), attachments

    def execute(self, template: Template, data: Any) -> Tuple[str, List[Attachment]]:
        """Render a template and record request, error and time metrics.

        Args:
            template: Compiled template
            data: Data object to render with

        Returns:
            Tuple of (stripped text, attachments)
        """
        started = time.monotonic()
        command = self.command

        labels: Dict[str, str] = {}
        if command.group:
            labels["group"] = command.group
        labels["command"] = command.name
        labels["bot"] = self.bot.name()
        labels["user_id"] = self.user.id()

        meter = command.meter
        requests = meter.counter("requests", "Count of all executions", labels, *METRIC_PREFIXES)
        errors = meter.counter(
            "errors", "Count of all errors during executions", labels, *METRIC_PREFIXES
        )
        elapsed = meter.counter("time", "Sum of all time executions", labels, *METRIC_PREFIXES)
        requests.inc()

        logger.debug(
            f"Executing command {command.name_with_group('/')} with params {dict(self.params)}..."
        )
        try:
            return self.render(template, data)
        except Exception:
            errors.inc()
            raise
        finally:
            elapsed.add(int((time.monotonic() - started) * 1000))

    # Deferred posts

    def after(self, message: "IMessage", channel: "IChannel") -> None:
        """Dispatch the recorded deferred posts.

        Called by the transport once the primary reply is delivered. Each post
        is rendered in a new context bound to the same bot, user and params
        with message and channel set, and posted as a threaded reply. Returns
        without waiting for the posts.

        Args:
            message: Delivered primary reply
            channel: Channel the reply landed in
        """
        posts, self._posts = self._posts, []
        for post in posts:
            self.command.dispatcher.submit(self._run_post, post, message, channel)

    def _run_post(self, post: DeferredPost, message: "IMessage", channel: "IChannel") -> None:
        command = self.command
        try:
            template = command.renderer.compile(post.path, name=post.name)
            context = ExecutionContext(
                command, self.bot, self.user, self.params, message=message, channel=channel
            )
            text, attachments = context.execute(template, post.payload)
            if context.deferred_posts:
                logger.warning(
                    f"Deferred post {post.name} recorded {len(context.deferred_posts)} "
                    f"nested post(s), ignoring them"
                )
            if not text:
                return
            self.bot.post(channel.id(), text, attachments, message)
        except Exception as e:
            logger.error(
                f"Deferred post {post.name} of {command.name_with_group('/')} failed: {e}",
                exc_info=True,
            )

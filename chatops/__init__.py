"""Template command engine for chat bots.

This package discovers commands defined as template files, compiles each
once, and executes them in isolated per-invocation contexts that collect
attachments and deferred follow-up posts.

Example:
    from chatops import CommandRegistry, ProcessorOptions

    registry = CommandRegistry("ops", ProcessorOptions(commands_dir="/srv/commands"))
    registry.load()

    command = registry.get("status")
    context, text, attachments = command.execute(bot, user, {"p0": "prod"})
    bot.post(channel_id, text, attachments)
    context.after(message, channel)
"""

from .command import DEFAULT_PARAMS_COUNT, Command, default_params
from .config import CommandConfig, ProcessorOptions, ResponseConfig, load_command_config
from .context import ExecutionContext, HostOperation
from .dispatcher import DeferredPostDispatcher
from .errors import (
    ChatOpsError,
    CommandExecutionError,
    CommandLoadError,
    SendMessageError,
    TemplateLoadError,
)
from .interfaces import IBot, IChannel, ICounter, IMessage, IMeter, IUser
from .metrics import Counter, Meter
from .models import Attachment, AttachmentType, DeferredPost, ExecuteParams, Field
from .registry import CommandRegistry
from .rendering import TemplateRenderer

__all__ = [
    # Engine
    "Command",
    "CommandRegistry",
    "ExecutionContext",
    "HostOperation",
    "DeferredPostDispatcher",
    "TemplateRenderer",
    "default_params",
    "DEFAULT_PARAMS_COUNT",
    # Configuration
    "ProcessorOptions",
    "CommandConfig",
    "ResponseConfig",
    "load_command_config",
    # Values
    "Attachment",
    "AttachmentType",
    "DeferredPost",
    "ExecuteParams",
    "Field",
    # Metrics
    "Counter",
    "Meter",
    # Interfaces
    "IBot",
    "IChannel",
    "ICounter",
    "IMessage",
    "IMeter",
    "IUser",
    # Errors
    "ChatOpsError",
    "CommandExecutionError",
    "CommandLoadError",
    "SendMessageError",
    "TemplateLoadError",
]

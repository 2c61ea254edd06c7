"""Exceptions raised by the chatops engine."""


class ChatOpsError(Exception):
    """Base exception for chatops errors."""

    pass


class TemplateLoadError(ChatOpsError):
    """A template file could not be read or compiled."""

    pass


class CommandLoadError(ChatOpsError):
    """A command could not be registered."""

    pass


class SendMessageError(ChatOpsError):
    """A fan-out message was rejected or could not be delivered."""

    pass


class CommandExecutionError(ChatOpsError):
    """A command failed to execute.

    The message is the operator-configured text safe to show in chat;
    the underlying failure is available as __cause__.
    """

    pass

"""Interface definitions for the chatops engine.

Provides Protocol types for the collaborators the engine consumes: the chat
transport (bot), identity/reference handles and the metrics backend.
All interfaces use runtime_checkable for isinstance() checks.

Example:
    from chatops.interfaces import IBot, IUser

    def notify(bot: IBot, user: IUser):
        # Works with any implementation
        bot.post(user.id(), "hello", [], None)
"""

from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from .models import Attachment


@runtime_checkable
class IUser(Protocol):
    """Identity of the user who invoked a command."""

    def id(self) -> str:
        """Get the user identifier.

        Returns:
            Transport-specific user id
        """
        ...


@runtime_checkable
class IChannel(Protocol):
    """Handle of the channel a reply landed in."""

    def id(self) -> str:
        """Get the channel identifier.

        Returns:
            Transport-specific channel id, accepted by IBot.post
        """
        ...


@runtime_checkable
class IMessage(Protocol):
    """Opaque handle of a delivered message, used to thread follow-ups."""

    def id(self) -> str:
        """Get the message identifier.

        Returns:
            Transport-specific message id
        """
        ...


@runtime_checkable
class IBot(Protocol):
    """Chat transport interface.

    The engine never talks to a chat platform beyond this interface.
    """

    def name(self) -> str:
        """Get the transport name.

        Returns:
            Bot name, used as a metrics label
        """
        ...

    def post(
        self,
        channel_id: str,
        text: str,
        attachments: Sequence[Attachment],
        reply_to: Optional[IMessage] = None,
    ) -> None:
        """Post a message to a channel.

        Args:
            channel_id: Target channel identifier
            text: Message text
            attachments: Attachments to send along with the text
            reply_to: Optional message to thread the post under

        Raises:
            Exception: If delivery failed
        """
        ...


@runtime_checkable
class ICounter(Protocol):
    """Cumulative, monotonic counter."""

    def inc(self) -> None:
        """Increment the counter by one."""
        ...

    def add(self, value: int) -> None:
        """Add a non-negative value to the counter.

        Args:
            value: Amount to add
        """
        ...


@runtime_checkable
class IMeter(Protocol):
    """Metrics backend handing out labeled counters."""

    def counter(
        self, name: str, description: str, labels: Dict[str, str], *prefixes: str
    ) -> ICounter:
        """Get or create a counter.

        Args:
            name: Counter name
            description: Human readable description
            labels: Label set identifying the series
            *prefixes: Name prefixes joined with "_"

        Returns:
            Counter instance, shared for the same name and labels
        """
        ...

    def snapshot(self) -> List[Dict[str, Any]]:
        """Get the current value of every counter.

        Returns:
            List of counter descriptions with their values
        """
        ...

"""Zulip transport for template commands.

Receives Zulip messages, matches them to registered commands, posts the
rendered replies and dispatches deferred posts once a reply is delivered.
It is also the IBot the engine uses to post fan-out messages and deferred
follow-ups.

Channel ids understood by post():
    "ops"              - stream "ops", default topic (or the topic of reply_to)
    "ops:deploys"      - stream "ops", topic "deploys"
    "alice@example.com" - private message
"""

import io
import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Sequence, Tuple

import zulip

from .command import Command
from .errors import ChatOpsError, CommandExecutionError
from .models import Attachment, AttachmentType
from .registry import CommandRegistry

logger = logging.getLogger(__name__)

DEFAULT_TOPIC = "chatops"


class ZulipUser:
    """Sender of a Zulip message."""

    def __init__(self, user_id: Any, email: str, full_name: str = ""):
        self.user_id = user_id
        self.email = email
        self.full_name = full_name or email.split("@")[0]

    def id(self) -> str:
        return str(self.user_id)


class ZulipChannel:
    """A stream topic, or a private conversation with one user."""

    def __init__(self, stream: str = "", topic: str = "", email: str = ""):
        self.stream = stream
        self.topic = topic
        self.email = email

    @property
    def is_private(self) -> bool:
        return not self.stream

    def id(self) -> str:
        if self.is_private:
            return self.email
        return f"{self.stream}:{self.topic}" if self.topic else self.stream


class ZulipMessage:
    """A delivered Zulip message."""

    def __init__(self, message_id: Any, channel: ZulipChannel):
        self.message_id = message_id
        self.channel = channel

    @property
    def topic(self) -> str:
        return self.channel.topic

    def id(self) -> str:
        return str(self.message_id)


def param_patterns(params: Sequence[str]) -> List[str]:
    """Turn declared params into progressive capture patterns.

    Entries that already are regular expressions with named groups are used
    as they are; plain names become one whitespace-separated token each.

    Args:
        params: Parameter names or patterns of a command

    Returns:
        List of regular expressions, shortest first
    """
    if any("(?P<" in p for p in params):
        return list(params)

    patterns = []
    pattern = ""
    for name in params:
        group = f"(?P<{name}>\\S+)"
        pattern = group if not pattern else f"{pattern}\\s+{group}"
        patterns.append(pattern)
    return patterns


def extract_params(params: Sequence[str], args: str) -> Dict[str, str]:
    """Extract named values from command arguments.

    The longest pattern matching the whole argument string wins; if none
    does, the longest pattern matching a prefix is used.

    Args:
        params: Parameter names or patterns of a command
        args: Argument text following the command name

    Returns:
        Mapping of parameter name to value, without empty values
    """
    args = args.strip()
    patterns = param_patterns(params)
    if not args or not patterns:
        return {}

    match = None
    for pattern in reversed(patterns):
        match = re.fullmatch(pattern, args)
        if match:
            break

    if match is None:
        for pattern in reversed(patterns):
            match = re.match(pattern, args)
            if match:
                break

    if match is None:
        return {}
    return {k: v for k, v in match.groupdict().items() if v}


class ZulipBot:
    """Zulip transport executing template commands.

    Example:
        bot = ZulipBot.from_zuliprc("/app/zuliprc", [registry])
        bot.start()
    """

    def __init__(
        self,
        client: Any,
        registries: Sequence[CommandRegistry],
        prefix: str = "/",
        default_topic: str = DEFAULT_TOPIC,
        max_workers: int = 8,
    ):
        """Initialize Zulip bot.

        Args:
            client: zulip.Client instance
            registries: Command registries to dispatch to
            prefix: Prefix marking a message as a command
            default_topic: Topic used when a stream post names no topic
            max_workers: Max concurrently executing commands
        """
        self._client = client
        self.registries = list(registries)
        self.prefix = prefix
        self.default_topic = default_topic
        self._workers = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="command")

        result = self._client.get_profile()
        if result.get("result") != "success":
            raise ChatOpsError(f"Failed to get bot profile: {result}")
        self.bot_email: str = result["email"]
        self.bot_full_name: str = result.get("full_name", "Bot")
        logger.info(f"Bot email: {self.bot_email}")

    @classmethod
    def from_zuliprc(cls, zuliprc_path: str, registries: Sequence[CommandRegistry], **kwargs):
        """Create a bot from a zuliprc file.

        Args:
            zuliprc_path: Path to zuliprc file
            registries: Command registries to dispatch to
            **kwargs: Passed to the constructor

        Returns:
            ZulipBot instance
        """
        return cls(zulip.Client(config_file=zuliprc_path), registries, **kwargs)

    def name(self) -> str:
        return "Zulip"

    # Posting

    def _parse_channel(self, channel_id: str, reply_to: Any = None) -> ZulipChannel:
        channel_id = channel_id.strip()
        if "@" in channel_id and ":" not in channel_id:
            return ZulipChannel(email=channel_id)

        stream, _, topic = channel_id.partition(":")
        if not topic:
            topic = getattr(reply_to, "topic", "") or self.default_topic
        return ZulipChannel(stream=stream.strip(), topic=topic.strip())

    def _upload(self, attachment: Attachment) -> str:
        buffer = io.BytesIO(attachment.data)
        buffer.name = attachment.title or "attachment"
        result = self._client.upload_file(buffer)
        if result.get("result") != "success":
            raise ChatOpsError(f"Failed to upload {attachment.title}: {result}")
        return str(result.get("url") or result.get("uri"))

    def _format_attachments(self, attachments: Sequence[Attachment]) -> List[str]:
        lines = []
        for attachment in attachments:
            if attachment.text:
                lines.append(attachment.text)
            if attachment.type == AttachmentType.TEXT:
                title = f"**{attachment.title}**\n" if attachment.title else ""
                lines.append(f"{title}```\n{attachment.data.decode('utf-8', 'replace')}\n```")
            else:
                uri = self._upload(attachment)
                lines.append(f"[{attachment.title or 'attachment'}]({uri})")
        return lines

    def _send(self, channel: ZulipChannel, content: str) -> Dict[str, Any]:
        if channel.is_private:
            request: Dict[str, Any] = {"type": "private", "to": [channel.email]}
        else:
            request = {"type": "stream", "to": channel.stream, "topic": channel.topic}
        request["content"] = content

        result = self._client.send_message(request)
        if result.get("result") != "success":
            raise ChatOpsError(f"Failed to send message to {channel.id()}: {result}")
        return dict(result)

    def post(
        self,
        channel_id: str,
        text: str,
        attachments: Sequence[Attachment],
        reply_to: Any = None,
    ) -> None:
        """Post a message, uploading attachments.

        Args:
            channel_id: Stream, stream:topic or e-mail
            text: Message text
            attachments: Attachments to include
            reply_to: Optional message whose topic the post goes to

        Raises:
            ChatOpsError: If an upload or the send failed
        """
        channel = self._parse_channel(channel_id, reply_to)
        content = "\n".join([text] + self._format_attachments(attachments or []))
        self._send(channel, content)
        logger.debug(f"Posted message to {channel.id()}")

    # Inbound

    def resolve(self, content: str) -> Optional[Tuple[CommandRegistry, Command, str]]:
        """Find the command a message invokes.

        Args:
            content: Message text without the prefix

        Returns:
            Tuple of (registry, command, argument text), or None
        """
        parts = content.split(None, 1)
        if not parts:
            return None

        for registry in self.registries:
            rest = parts
            if registry.name:
                if parts[0] != registry.name or len(parts) < 2:
                    continue
                rest = parts[1].split(None, 1)
            command = registry.get(rest[0])
            if command:
                return registry, command, rest[1] if len(rest) > 1 else ""
        return None

    def _strip_mention(self, content: str) -> str:
        mention = f"@**{self.bot_full_name}**"
        if content.startswith(mention):
            content = content[len(mention) :]
        return content.strip()

    def _reply(self, channel: ZulipChannel, content: str, error: bool = False) -> Dict[str, Any]:
        if error:
            content = f":warning: {content}"
        return self._send(channel, content)

    def handle_message(self, msg: Dict[str, Any]) -> None:
        """Queue an incoming message for processing.

        Args:
            msg: The incoming Zulip message dict.
        """
        if msg.get("sender_email") == self.bot_email:
            return
        self._workers.submit(self._process_logged, msg)

    def process_message(self, msg: Dict[str, Any]) -> None:
        """Execute the command a message invokes and reply to it.

        Failures outside the command render are logged and answered with
        the registry's generic error message.

        Args:
            msg: The incoming Zulip message dict.
        """
        content = self._strip_mention(msg.get("content", ""))
        if not content.startswith(self.prefix):
            return

        resolved = self.resolve(content[len(self.prefix) :])
        if resolved is None:
            logger.debug(f"No command matches: {content[:100]}")
            return
        registry, command, args = resolved

        user = ZulipUser(
            msg.get("sender_id", ""), msg.get("sender_email", ""), msg.get("sender_full_name", "")
        )
        if msg.get("type") == "stream":
            channel = ZulipChannel(
                stream=msg.get("display_recipient", ""), topic=msg.get("subject", "")
            )
        else:
            channel = ZulipChannel(email=user.email)

        try:
            self._execute_and_reply(command, content, args, user, channel)
        except Exception as e:
            logger.error(f"Error handling {command.name_with_group('/')}: {e}", exc_info=True)
            self._safe_reply(channel, registry.options.error, error=True)

    def _process_logged(self, msg: Dict[str, Any]) -> None:
        try:
            self.process_message(msg)
        except Exception as e:
            logger.error(f"Error processing message: {e}", exc_info=True)

    def _execute_and_reply(
        self, command: Command, content: str, args: str, user: ZulipUser, channel: ZulipChannel
    ) -> None:
        cname = command.name_with_group("/")
        params = extract_params(command.params, args)
        logger.info(f"Executing {cname} for {user.id()} in {channel.id()}")

        started = time.monotonic()
        try:
            context, text, attachments = command.execute(self, user, params)
        except CommandExecutionError as e:
            self._safe_reply(channel, str(e), error=True)
            return

        if not text:
            logger.error(f"Command {cname} no response")
            self._safe_reply(channel, f"Command {cname} no response", error=True)
            return

        if context.suppressed:
            logger.debug(f"Command {cname} response is invisible, not posting")
            return

        lines = []
        if context.original:
            lines.append(f"```quote\n{content}\n```")
        lines.append(text)
        if context.duration:
            lines.append(f"_took {time.monotonic() - started:.2f}s_")

        try:
            lines.extend(self._format_attachments(attachments))
            result = self._reply(channel, "\n".join(lines), error=context.error)
        except Exception as e:
            logger.error(f"Command {cname} reply failed: {e}", exc_info=True)
            return

        context.after(ZulipMessage(result.get("id"), channel), channel)

    def _safe_reply(self, channel: ZulipChannel, content: str, error: bool = False) -> None:
        try:
            self._reply(channel, content, error=error)
        except Exception as e:
            logger.error(f"Failed to reply in {channel.id()}: {e}")

    def start(self) -> None:
        """Start listening to messages.

        Returns:
            None
        """
        logger.info("Starting event loop...")
        self._client.call_on_each_message(self.handle_message)

    def stop(self) -> None:
        """Stop command workers and deferred post dispatchers."""
        self._workers.shutdown(wait=True)
        for registry in self.registries:
            registry.shutdown(wait=True)

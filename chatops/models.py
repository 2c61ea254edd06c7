"""Value types carried through the command pipeline.

Provides dataclasses for attachments, deferred posts and descriptor fields,
plus the read-only parameter mapping handed to every invocation.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)


class AttachmentType(Enum):
    """Kinds of content an attachment can carry."""

    FILE = "file"
    IMAGE = "image"
    TEXT = "text"


@dataclass
class Attachment:
    """A titled blob of typed content accompanying a reply.

    Attributes:
        title: Attachment title shown by the transport
        text: Optional caption/pretext
        data: Raw content
        type: Kind of content
    """

    title: str
    text: str = ""
    data: bytes = b""
    type: AttachmentType = AttachmentType.FILE

    @classmethod
    def build(cls, title: str, text: str, data: Any, typ: Any) -> "Attachment":
        """Create an attachment from loosely typed template arguments.

        Args:
            title: Attachment title
            text: Attachment caption
            data: Bytes, or any value which is converted with str()
            typ: AttachmentType or its string value ("file", "image", "text");
                unknown types fall back to file

        Returns:
            Attachment instance
        """
        if isinstance(data, (bytes, bytearray)):
            raw = bytes(data)
        else:
            raw = str(data).encode("utf-8")

        if isinstance(typ, AttachmentType):
            kind = typ
        else:
            try:
                kind = AttachmentType(str(typ or "file"))
            except ValueError:
                logger.warning(f"Unknown attachment type {typ!r} for {title}, using file")
                kind = AttachmentType.FILE
        return cls(title=str(title), text=str(text), data=raw, type=kind)


@dataclass(frozen=True)
class Field:
    """Label/value pair declared in a command descriptor."""

    label: str
    value: str = ""


@dataclass
class DeferredPost:
    """A template file recorded during a render, to be rendered and posted later.

    Attributes:
        name: File base name without extension
        path: Resolved path of the template file
        payload: Data object the file is rendered with
    """

    name: str
    path: str
    payload: Any = None


class ExecuteParams(Mapping[str, str]):
    """Read-only mapping of parameter name to extracted value."""

    def __init__(self, values: Optional[Mapping[str, str]] = None):
        self._values = MappingProxyType(dict(values or {}))

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __iter__(self):
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __getattr__(self, name: str) -> str:
        # Lets templates write params.host as well as params["host"]. Mapping
        # methods (get, keys, items, values) win, so descriptors reserve them.
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._values[name]
        except KeyError:
            raise AttributeError(name) from None

    def __repr__(self) -> str:
        return f"ExecuteParams({dict(self._values)!r})"

"""
Data URI helpers.

Captured media travels as `data:<mimetype>;base64,<payload>` strings so the
client never needs a separate upload step.
"""

import base64
import binascii
import re
from dataclasses import dataclass

_DATA_URI_RE = re.compile(
    r"^data:(?P<mime>[^;,]*)(?P<params>(?:;(?!base64,)[^;]*)*);base64,(?P<payload>.*)$",
    re.DOTALL,
)


@dataclass(frozen=True)
class DecodedMedia:
    mime_type: str
    data: bytes


def encode_data_uri(mime_type: str, data: bytes) -> str:
    """Encode raw bytes as a base64 data URI."""
    payload = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{payload}"


def decode_data_uri(uri: str) -> DecodedMedia:
    """
    Decode a base64 data URI.

    Codec parameters (`audio/webm;codecs=opus`) are kept on the MIME type.

    Raises:
        ValueError: the string is not a base64 data URI or the payload is corrupt.
    """
    match = _DATA_URI_RE.match((uri or "").strip())
    if not match:
        raise ValueError("not a base64 data URI")
    mime_type = (match.group("mime") + match.group("params")) or "application/octet-stream"
    try:
        data = base64.b64decode(match.group("payload"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"invalid base64 payload: {e}") from e
    return DecodedMedia(mime_type=mime_type, data=data)


def describe_data_uri(uri: str) -> str:
    """Short log-safe description: MIME type and total length, never the payload."""
    if not uri:
        return "<empty>"
    head = uri.split(";base64,", 1)[0]
    mime = head[5:] if head.startswith("data:") and len(head) < len(uri) else "?"
    return f"data:{mime or '?'};base64,...(length {len(uri)})"

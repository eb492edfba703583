"""MIME decoding helpers for envelopes and message bodies."""

from email import message_from_bytes, policy
from email.header import decode_header
from email.message import EmailMessage

from .errors import DecodeError


def decode_mime_header(header_bytes: bytes | str | None) -> str:
    """Decode a MIME-encoded header (RFC 2047).

    Handles encoded words like =?UTF-8?B?...?= (Base64) and =?UTF-8?Q?...?=
    (Quoted-printable). Malformed headers fall back to the raw string.

    Args:
        header_bytes: Raw header value from an IMAP ENVELOPE

    Returns:
        Decoded string ("" for a missing header)

    Example:
        >>> decode_mime_header(b'=?UTF-8?B?SGVsbG8gV29ybGQ=?=')
        'Hello World'
    """
    if not header_bytes:
        return ""
    raw = header_bytes.decode("utf-8", errors="replace") if isinstance(header_bytes, bytes) else header_bytes

    try:
        result_parts = []
        for content, charset in decode_header(raw):
            if isinstance(content, bytes):
                result_parts.append(content.decode(charset or "utf-8", errors="replace"))
            else:
                result_parts.append(content)
        return "".join(result_parts)
    except (LookupError, ValueError):
        # Unknown charset or broken encoded word
        return raw


def extract_text_body(raw_message: bytes) -> str:
    """Return the plain-text part of a raw RFC 822 message.

    Multipart messages are searched for their ``text/plain`` part; the HTML
    alternative is ignored. A message with no ``text/plain`` part at all is
    an error rather than an empty string.

    Args:
        raw_message: Complete message bytes (``BODY[]``)

    Returns:
        Decoded text, charset applied (UTF-8 with replacement characters when
        the declared charset is unknown)

    Raises:
        DecodeError: No text/plain part, or its payload cannot be decoded
    """
    message: EmailMessage = message_from_bytes(raw_message, policy=policy.default)  # type: ignore[assignment]

    part = message.get_body(preferencelist=("plain",))
    if part is None:
        raise DecodeError(f"Message has no text/plain part (content type {message.get_content_type()})")

    try:
        content = part.get_content()
    except LookupError:
        # Charset unknown to Python (e.g. unknown-8bit)
        payload = part.get_payload(decode=True) or b""
        return payload.decode("utf-8", errors="replace")
    except ValueError as exc:
        raise DecodeError(f"Unable to decode text/plain part: {exc}") from exc
    return content

"""Deterministic round-trips for text blobs stored on the appliance.

The appliance base64-encodes a stored blob in its responses only when the
blob contains a multi-byte character, and nothing in the response says
which form was returned. Writes therefore always prepend a marker line
that itself contains a multi-byte character, so every blob written here
comes back base64-encoded, and always send the payload base64-encoded.
"""

import base64
import binascii
import re

from loadmaster_sync.utils.errors import EncodingError

# Contains "Ä" so the appliance always answers with base64
CONTENT_MARKER = "# LoadMaster API MÄrker\n"

# Terminator the appliance appends to stored blobs
STORAGE_TERMINATOR = "\r\n"

BASE64_PATTERN = re.compile(
    r'^(?:[A-Za-z0-9+/]{4})*(?:[A-Za-z0-9+/]{2}==|[A-Za-z0-9+/]{3}=)?$'
)


def looks_like_base64(payload: str) -> bool:
    """True if the payload uses only the base64 alphabet with valid padding."""
    return bool(BASE64_PATTERN.match(payload))


class ContentNormalizer:
    """Encodes blobs for writing and recovers the original text on read."""

    def __init__(self, marker: str = CONTENT_MARKER):
        if not marker.endswith("\n"):
            raise ValueError("marker must be a complete line")
        self.marker = marker

    def normalize(self, text: str) -> str:
        """Return the wire payload for ``text``."""
        return base64.b64encode((self.marker + text).encode('utf-8')).decode('ascii')

    def denormalize(self, payload: str, strip_terminator: bool = False) -> str:
        """Recover the text from a payload returned by the appliance.

        Args:
            payload: Data as returned by the appliance
            strip_terminator: Drop one trailing CRLF appended on storage

        Returns:
            The original text

        Raises:
            EncodingError: The payload matches the base64 pattern but does
                not decode to UTF-8 text
        """
        if not looks_like_base64(payload):
            # Written by another tool before normalization existed
            text = payload
        else:
            try:
                text = base64.b64decode(payload, validate=True).decode('utf-8')
            except (binascii.Error, UnicodeDecodeError) as e:
                raise EncodingError(
                    f"Payload looks like base64 but could not be decoded: {e}",
                    cause=e,
                    suggestions=['Re-create the blob so it is written with the content marker'],
                ) from e

        if text.startswith(self.marker):
            text = text[len(self.marker):]

        if strip_terminator and text.endswith(STORAGE_TERMINATOR):
            text = text[:-len(STORAGE_TERMINATOR)]

        return text


default_normalizer = ContentNormalizer()


def normalize(text: str) -> str:
    return default_normalizer.normalize(text)


def denormalize(payload: str, strip_terminator: bool = False) -> str:
    return default_normalizer.denormalize(payload, strip_terminator=strip_terminator)

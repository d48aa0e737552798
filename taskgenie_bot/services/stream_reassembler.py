"""
Reassembly of the AI chat data stream into Telegram-sized messages.

The AI chat endpoint answers with newline-delimited fragments of the form
``<tag>:<json-payload>``. Tags ``0`` and ``1`` carry text deltas; every other
tag is informational. Unknown tags are ignored so the upstream format can grow
without breaking the bot.
"""

import codecs
import json
from typing import Any, List, Optional, Tuple, Union

import structlog

from ..core.constants import (
    AUXILIARY_TAGS,
    ERROR_TAG,
    FALLBACK_RESPONSE,
    MAX_MESSAGE_LENGTH,
    MAX_TAG_LENGTH,
    TEXT_DELTA_TAGS,
)

logger = structlog.get_logger(__name__)


def split_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> List[str]:
    """Split text into consecutive slices of at most ``max_length`` characters."""
    if max_length <= 0:
        raise ValueError("max_length must be positive")
    return [text[i:i + max_length] for i in range(0, len(text), max_length)]


def parse_fragment(line: str) -> Optional[Tuple[str, str]]:
    """Split a stream line into ``(tag, payload)``, or None if it is not a fragment."""
    tag, sep, payload = line.partition(":")
    if not sep or not tag or len(tag) > MAX_TAG_LENGTH or not tag.isalnum():
        return None
    return tag, payload


def extract_text(value: Any) -> Optional[str]:
    """Text carried by a decoded text-delta payload."""
    if isinstance(value, str):
        return value
    if isinstance(value, dict) and isinstance(value.get("text"), str):
        return value["text"]
    return None


class StreamReassembler:
    """Accumulates text deltas from one AI chat response."""

    def __init__(
        self,
        max_length: int = MAX_MESSAGE_LENGTH,
        fallback: str = FALLBACK_RESPONSE,
    ):
        if max_length <= 0:
            raise ValueError("max_length must be positive")
        self.max_length = max_length
        self.fallback = fallback
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._residual = ""
        self._parts: List[str] = []
        self.chunk_count = 0
        self.fragment_count = 0
        self.skipped_count = 0

    @property
    def text(self) -> str:
        """Accumulated response so far, untrimmed."""
        return "".join(self._parts)

    def ingest(self, chunk: Union[bytes, str]) -> None:
        """Feed one chunk of the response body."""
        self.chunk_count += 1
        if isinstance(chunk, bytes):
            decoded = self._decoder.decode(chunk)
        else:
            decoded = chunk

        buffer = self._residual + decoded
        *lines, self._residual = buffer.split("\n")
        for line in lines:
            self._process_line(line)

    def finalize(self) -> List[str]:
        """Flush buffered input and return the messages to send, in order."""
        tail = self._residual + self._decoder.decode(b"", final=True)
        self._residual = ""
        if tail:
            self._process_line(tail)

        response = self.text.strip()

        logger.info(
            "Stream reassembled",
            chunks=self.chunk_count,
            fragments=self.fragment_count,
            skipped=self.skipped_count,
            length=len(response),
        )

        if not response:
            return [self.fallback]
        return split_message(response, self.max_length)

    def _process_line(self, line: str) -> None:
        line = line.rstrip("\r")
        if not line:
            return

        fragment = parse_fragment(line)
        if fragment is None:
            logger.debug("Ignoring non-fragment line", line=line[:100])
            return

        tag, payload = fragment
        self.fragment_count += 1

        if tag in TEXT_DELTA_TAGS:
            self._append_delta(tag, payload, line)
            return

        # Everything else is informational only
        try:
            value = json.loads(payload)
        except ValueError:
            logger.debug("Undecodable auxiliary fragment", tag=tag, line=line[:100])
            return

        if tag == ERROR_TAG:
            logger.warning("Upstream reported an error in stream", payload=str(value)[:200])
        elif tag in AUXILIARY_TAGS:
            logger.debug("Auxiliary stream event", tag=tag)
        else:
            logger.debug("Unrecognized stream tag", tag=tag)

    def _append_delta(self, tag: str, payload: str, line: str) -> None:
        try:
            value = json.loads(payload)
        except ValueError as e:
            self.skipped_count += 1
            logger.warning("Parse error in text delta", error=str(e), line=line[:100])
            return

        text = extract_text(value)
        if text is None:
            self.skipped_count += 1
            logger.debug("Text delta without text", tag=tag, payload_type=type(value).__name__)
            return

        self._parts.append(text)

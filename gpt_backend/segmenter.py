"""
Splitting hybrid "prose, then ---, then one JSON line" model output.

The JSON suffix is only parsed once a complete top-level object is present:
we track brace depth (ignoring braces inside strings) and attempt a parse
when it returns to zero. Until then the suffix counts as "no structured
content yet", which makes the same code usable on a full response and on
a response that is still arriving delta by delta.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, NamedTuple, Optional

from gpt_backend.models import ExploreChunk, RelatedQuestion, RelatedTopic
from gpt_backend.prompts import SEPARATOR

logger = logging.getLogger(__name__)

# Stray anchor tags the model sometimes wraps keywords in.
_ANCHOR_RE = re.compile(r"</?a>")


class Segment(NamedTuple):
    text: str
    payload: Optional[Dict[str, Any]]


def clean_text(text: str) -> str:
    return _ANCHOR_RE.sub("", text).strip()


def find_object_end(buffer: str) -> Optional[int]:
    """
    Index one past the closing brace of the first top-level JSON object in
    buffer, or None while that object is still incomplete.
    """
    start = buffer.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for pos in range(start, len(buffer)):
        ch = buffer[pos]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return pos + 1
    return None


def parse_payload(suffix: str) -> Optional[Dict[str, Any]]:
    end = find_object_end(suffix)
    if end is None:
        return None

    candidate = suffix[suffix.find("{"):end]
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.warning("Discarding malformed JSON block: %s", e)
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def split_response(raw: str) -> Segment:
    head, sep, tail = raw.partition(SEPARATOR)
    if not sep:
        return Segment(clean_text(raw), None)
    return Segment(clean_text(head), parse_payload(tail))


class RelatedContent:
    """Topics and questions seen so far, deduplicated by name / question text."""

    def __init__(self):
        self.topics: List[RelatedTopic] = []
        self.questions: List[RelatedQuestion] = []

    def add(self, payload: Dict[str, Any]) -> None:
        topics = payload.get("topics")
        if isinstance(topics, list):
            seen = {t.topic for t in self.topics}
            for item in topics:
                if not isinstance(item, dict) or not item.get("name"):
                    continue
                name = str(item["name"])
                if name in seen:
                    continue
                seen.add(name)
                self.topics.append(
                    RelatedTopic(topic=name, type=item.get("type"), reason=item.get("detail"))
                )

        questions = payload.get("questions")
        if isinstance(questions, list):
            seen = {q.question for q in self.questions}
            for item in questions:
                if not isinstance(item, dict) or not item.get("text"):
                    continue
                text = str(item["text"])
                if text in seen:
                    continue
                seen.add(text)
                self.questions.append(
                    RelatedQuestion(question=text, type=item.get("type"), context=item.get("detail"))
                )

    def chunk(self, text: str) -> ExploreChunk:
        return ExploreChunk(
            text=text,
            topics=list(self.topics) or None,
            questions=list(self.questions) or None,
        )


class ExploreSegmenter:
    """
    Incremental segmenter for a streamed explore response.

    feed() takes the next text delta and returns the chunk to send to the
    client, if any: the accumulated prose while still before the separator,
    then a single chunk with topics and questions once the JSON completes.
    """

    def __init__(self):
        self.buffer = ""
        self.related = RelatedContent()
        self.payload_done = False
        self._emitted_text: Optional[str] = None

    @property
    def in_json(self) -> bool:
        return SEPARATOR in self.buffer

    @property
    def text(self) -> str:
        return split_response(self.buffer).text

    def feed(self, delta: str) -> Optional[ExploreChunk]:
        if self.payload_done or not delta:
            return None
        self.buffer += delta

        if not self.in_json:
            # The separator may be split across deltas; hold back a trailing "-".
            text = clean_text(self.buffer.rstrip("-"))
            return self._text_chunk(text)

        segment = split_response(self.buffer)
        if segment.payload is None:
            return self._text_chunk(segment.text)

        self.related.add(segment.payload)
        self.payload_done = True
        self._emitted_text = segment.text
        return self.related.chunk(segment.text)

    def finish(self) -> Optional[ExploreChunk]:
        """Final chunk for whatever was not sent yet."""
        if self.payload_done:
            return None
        if self.in_json:
            logger.warning("Response ended without a complete JSON block")
        return self._text_chunk(self.text)

    def _text_chunk(self, text: str) -> Optional[ExploreChunk]:
        if not text or text == self._emitted_text:
            return None
        self._emitted_text = text
        return self.related.chunk(text)

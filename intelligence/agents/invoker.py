"""
Structured agent invocation.

One call to the agent runtime, then: locate the text payload in whatever
envelope came back, parse it (JSON or markdown), validate JSON against the
role's schema. The rest of the system only ever sees validated models or
non-empty markdown.
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any, Callable, Iterable, Optional, Protocol, Tuple, Type, TypeVar
import logging

from pydantic import BaseModel, ValidationError

from utils.exceptions import (
    NoOutputError,
    SchemaViolationError,
    StageTimeoutError,
    UnparseableOutputError,
)
from .runtime import AgentSpec


logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

Extractor = Callable[[Any], Optional[str]]

_JSON_FENCE = re.compile(r"```json\s*([\s\S]*?)\s*```", re.IGNORECASE)
_ANY_FENCE = re.compile(r"```[\w-]*\s*([\s\S]*?)\s*```")


class AgentRuntime(Protocol):
    async def run(self, spec: AgentSpec, prompt: str) -> Any:
        ...


def _lookup(envelope: Any, name: str) -> Any:
    if isinstance(envelope, dict):
        return envelope.get(name)
    return getattr(envelope, name, None)


def _field_extractor(name: str) -> Extractor:
    def extract(envelope: Any) -> Optional[str]:
        value = _lookup(envelope, name)
        return value if isinstance(value, str) and value.strip() else None

    extract.__name__ = f"extract_{name}"
    return extract


def _segment_texts(content: Any) -> Iterable[str]:
    if isinstance(content, str):
        yield content
        return
    if not isinstance(content, list):
        return
    for part in content:
        text = part if isinstance(part, str) else _lookup(part, "text")
        if isinstance(text, str) and text:
            yield text


def extract_output_segments(envelope: Any) -> Optional[str]:
    """Join every text part found in the `output` segment list."""
    segments = _lookup(envelope, "output")
    if not isinstance(segments, list):
        return None
    texts = []
    for segment in segments:
        texts.extend(_segment_texts(_lookup(segment, "content")))
    joined = "\n".join(texts)
    return joined if joined.strip() else None


EXTRACTORS: Tuple[Extractor, ...] = (
    _field_extractor("output_text"),
    _field_extractor("outputText"),
    _field_extractor("final_output_text"),
    _field_extractor("finalOutputText"),
    extract_output_segments,
)


def extract_text(envelope: Any, extractors: Tuple[Extractor, ...] = EXTRACTORS) -> Optional[str]:
    """First non-empty text found by the ordered extractors."""
    if envelope is None:
        return None
    if isinstance(envelope, str):
        return envelope if envelope.strip() else None
    for extractor in extractors:
        text = extractor(envelope)
        if text:
            return text
    return None


def parse_json_text(text: str, role: str) -> Any:
    """Strict parse of the whole text, else of the first fenced block (```json preferred)."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    match = _JSON_FENCE.search(text) or _ANY_FENCE.search(text)
    if match is None or not match.group(1).strip():
        raise UnparseableOutputError(role)
    try:
        return json.loads(match.group(1))
    except json.JSONDecodeError as exc:
        raise UnparseableOutputError(role) from exc


class StructuredAgentInvoker:
    """Invokes one role and returns a schema-valid model or non-empty markdown."""

    def __init__(
        self,
        runtime: AgentRuntime,
        *,
        stage_timeout_sec: Optional[float] = None,
        extractors: Tuple[Extractor, ...] = EXTRACTORS,
    ):
        self.runtime = runtime
        self.stage_timeout_sec = stage_timeout_sec if stage_timeout_sec and stage_timeout_sec > 0 else None
        self.extractors = extractors

    async def _run(self, spec: AgentSpec, prompt: str) -> str:
        if self.stage_timeout_sec is None:
            envelope = await self.runtime.run(spec, prompt)
        else:
            try:
                envelope = await asyncio.wait_for(self.runtime.run(spec, prompt), timeout=self.stage_timeout_sec)
            except asyncio.TimeoutError as exc:
                raise StageTimeoutError(spec.name, self.stage_timeout_sec) from exc

        text = extract_text(envelope, self.extractors)
        if not text:
            raise NoOutputError(spec.name)
        return text

    async def invoke_json(self, spec: AgentSpec, prompt: str, schema: Type[ModelT]) -> ModelT:
        text = await self._run(spec, prompt)
        data = parse_json_text(text, spec.name)
        try:
            return schema.model_validate(data)
        except ValidationError as exc:
            raise SchemaViolationError(spec.name, str(exc)) from exc

    async def invoke_markdown(self, spec: AgentSpec, prompt: str) -> str:
        return await self._run(spec, prompt)

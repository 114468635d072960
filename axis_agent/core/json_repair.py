"""
JSON Extraction & Repair — coerce free-text model replies into schema-valid data.

Stages, stopping at the first one whose output parses *and* validates:

    1. direct    — the whole reply is JSON
    2. fenced    — Markdown ```json fences stripped
    3. balanced  — first brace-balanced ``{...}`` substring, string/escape aware
                   (tried on the raw text, then on the fence-stripped text)

If every stage fails, ``JsonRepairPipeline`` makes exactly one corrective
LLM call at temperature 0 and runs the same stages on its output.  A second
failure raises ``InvalidStructureError``; there is no default value.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterator, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .errors import InvalidStructureError
from .models import CompletionOptions

if TYPE_CHECKING:
    from .providers.base import BaseLLMProvider
    from .stream_cancellation import StreamCancellationToken

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

JSON_FORMATTER_SYSTEM_PROMPT = (
    "You are a strict JSON formatter. Output ONLY valid JSON. "
    "No markdown fences, no commentary, no trailing commas."
)

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


def safe_json_loads(text: str) -> tuple[bool, Any]:
    """``(True, value)`` if *text* is JSON, else ``(False, None)``."""
    try:
        return True, json.loads(text)
    except (TypeError, ValueError):
        return False, None


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def extract_balanced_object(text: str) -> Optional[str]:
    """
    Return the first brace-balanced ``{...}`` substring of *text*.

    Braces inside string literals (including escaped quotes) do not count.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def _candidates(raw: str) -> Iterator[tuple[str, str]]:
    """Yield ``(stage, candidate_text)`` in pipeline order."""
    text = (raw or "").strip()
    yield "direct", text

    unfenced = strip_code_fences(text)
    if unfenced != text:
        yield "fenced", unfenced

    seen = set()
    for source in (text, unfenced):
        balanced = extract_balanced_object(source)
        if balanced is not None and balanced not in seen:
            seen.add(balanced)
            yield "balanced", balanced


def parse_json_text(raw: str) -> Any:
    """Lenient parse (no schema): first stage that yields JSON wins, else ``None``."""
    for _stage, candidate in _candidates(raw):
        ok, value = safe_json_loads(candidate)
        if ok:
            return value
    return None


@dataclass
class ExtractionResult:
    ok: bool
    value: Any = None
    stage: str = ""
    raw: str = ""
    repaired: bool = False
    errors: list[str] = field(default_factory=list)


def extract_and_validate(raw: str, schema: Type[M]) -> ExtractionResult:
    """Run the local stages against *schema*; never calls a model."""
    errors: list[str] = []
    for stage, candidate in _candidates(raw):
        ok, parsed = safe_json_loads(candidate)
        if not ok:
            errors.append(f"{stage}: not JSON")
            continue
        try:
            value = schema.model_validate(parsed)
        except ValidationError as exc:
            errors.append(f"{stage}: {exc.error_count()} validation error(s)")
            continue
        return ExtractionResult(ok=True, value=value, stage=stage, raw=raw)
    return ExtractionResult(ok=False, raw=raw, errors=errors)


def describe_schema(schema: Type[BaseModel]) -> str:
    return json.dumps(schema.model_json_schema(), separators=(",", ":"))


def build_repair_prompt(raw: str, schema_hint: str) -> str:
    return (
        "Fix the following text into strict JSON that matches this schema:\n"
        f"Schema: {schema_hint}\n\n"
        f"Text to fix:\n{raw}"
    )


class JsonRepairPipeline:
    """Structured completion against one provider, with a single repair round."""

    def __init__(self, provider: "BaseLLMProvider"):
        self.provider = provider

    async def complete(
        self,
        system: str,
        user: str,
        schema: Type[M],
        options: Optional[CompletionOptions] = None,
        schema_hint: Optional[str] = None,
        cancel_token: Optional["StreamCancellationToken"] = None,
    ) -> M:
        """
        Ask the model for JSON matching *schema* and return the validated model.

        Raises:
            InvalidStructureError: if neither the reply nor the repaired reply validates.
        """
        opts = options or CompletionOptions()
        opts = CompletionOptions(temperature=opts.temperature, max_tokens=opts.max_tokens,
                                 expect_json=True)
        raw = await self.provider.complete(system, user, opts, cancel_token=cancel_token)
        return (await self.coerce(raw, schema, opts.max_tokens, schema_hint, cancel_token)).value

    async def coerce(
        self,
        raw: str,
        schema: Type[M],
        max_tokens: int = 900,
        schema_hint: Optional[str] = None,
        cancel_token: Optional["StreamCancellationToken"] = None,
    ) -> ExtractionResult:
        result = extract_and_validate(raw, schema)
        if result.ok:
            logger.debug("Structured reply accepted at stage %s", result.stage)
            return result

        logger.info("Reply failed validation (%s); requesting JSON repair",
                    "; ".join(result.errors) or "empty")
        repair_options = CompletionOptions(
            temperature=0,
            max_tokens=max(300, min(max_tokens, 1200)),
            expect_json=True,
        )
        repaired_raw = await self.provider.complete(
            JSON_FORMATTER_SYSTEM_PROMPT,
            build_repair_prompt(raw, schema_hint or describe_schema(schema)),
            repair_options,
            cancel_token=cancel_token,
        )
        repaired = extract_and_validate(repaired_raw, schema)
        if repaired.ok:
            repaired.repaired = True
            return repaired

        raise InvalidStructureError(
            f"Model output does not match {schema.__name__} after repair",
            raw=raw,
            repaired_raw=repaired_raw,
        )

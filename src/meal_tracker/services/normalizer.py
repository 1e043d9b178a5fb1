"""Normalize inference responses into a single detection result type.

The inference service answers in several shapes:

* a top-level object with a ``meal_components`` array;
* a Responses API object whose ``output`` array holds a ``message`` item with
  the answer text (usually JSON, sometimes prose);
* free text with a JSON payload embedded somewhere inside it, typically a
  clarification list such as ``[{"name": "Rice", "question": "..."}]``.

``normalize_response`` tries each in priority order and returns one of the
``NormalizedResponse`` variants. It never raises for malformed input.
"""

import json
import logging
import re
from dataclasses import dataclass, field

from pydantic import ValidationError

from meal_tracker.domain.detection import (
    ClarificationResult,
    ComponentsResult,
    FreeTextResult,
    MealComponent,
    NormalizedResponse,
    ParseFailure,
)
from meal_tracker.domain.inference import OutputItem

logger = logging.getLogger(__name__)

_QUESTION_PATTERN = re.compile(r'"question"\s*:\s*"((?:[^"\\]|\\.)+)"')
_NAME_PATTERN = re.compile(r'"name"\s*:\s*"((?:[^"\\]|\\.)+)"')
_SUBJECT_KEYS = ("name", "component", "item", "food")
_MEAL_NAME_KEYS = ("name", "meal_name", "meal")
_COMMENT_KEYS = ("followup", "follow_up", "comment", "notes")


@dataclass
class _Attempts:
    """Bookkeeping for the failure diagnostic."""

    branches: list[str] = field(default_factory=list)
    component_count: int | None = None
    output_count: int | None = None
    message_items: int = 0
    text_length: int = 0
    error: str | None = None


def normalize_response(raw: object) -> NormalizedResponse:
    """Map one raw inference response to a normalized result."""
    attempts = _Attempts()

    if isinstance(raw, dict):
        attempts.error = _error_summary(raw.get("error"))
        if "meal_components" in raw:
            attempts.branches.append("meal_components")
            components = decode_components(raw.get("meal_components"))
            attempts.component_count = len(components)
            if components:
                return ComponentsResult(
                    components=components,
                    meal_name=_first_string(raw, _MEAL_NAME_KEYS),
                    comment=_first_string(raw, _COMMENT_KEYS),
                )

    text = _extract_text(raw, attempts)
    if text:
        attempts.branches.append("embedded_json")
        result = _interpret_text(text)
        if result is not None:
            return result
        attempts.branches.append("free_text")
        return FreeTextResult(text=text)

    diagnostic = _diagnostic(attempts)
    logger.warning("Unrecognized inference response: %s", diagnostic)
    return ParseFailure(diagnostic=diagnostic)


def response_reference(raw: object) -> str | None:
    """Return the response id used to chain follow-up requests."""
    if isinstance(raw, dict):
        response_id = raw.get("id")
        if isinstance(response_id, str) and response_id.strip():
            return response_id.strip()
    return None


def decode_components(raw: object) -> tuple[MealComponent, ...]:
    """Decode a components array, skipping entries without a usable name."""
    if not isinstance(raw, list):
        return ()
    components: list[MealComponent] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        try:
            components.append(MealComponent.model_validate(entry))
        except ValidationError:
            logger.debug("Skipping malformed meal component: %r", entry)
    return tuple(components)


def _extract_text(raw: object, attempts: _Attempts) -> str | None:
    if isinstance(raw, str):
        attempts.branches.append("raw_text")
        attempts.text_length = len(raw.strip())
        return raw.strip() or None
    if not isinstance(raw, dict):
        return None

    output = raw.get("output")
    if isinstance(output, list):
        attempts.branches.append("output")
        attempts.output_count = len(output)
        items = _output_items(output)
        messages = [item for item in items if item.type == "message"]
        attempts.message_items = len(messages)
        # Message items first, then anything else that carries text.
        for item in [*messages, *items]:
            text = item.answer_text()
            if text and text.strip():
                attempts.text_length = len(text.strip())
                return text.strip()

    output_text = raw.get("output_text")
    if isinstance(output_text, str) and output_text.strip():
        attempts.branches.append("output_text")
        attempts.text_length = len(output_text.strip())
        return output_text.strip()
    return None


def _output_items(output: list[object]) -> list[OutputItem]:
    items: list[OutputItem] = []
    for entry in output:
        if not isinstance(entry, dict):
            continue
        try:
            items.append(OutputItem.model_validate(entry))
        except ValidationError:
            logger.debug("Skipping malformed output item: %r", entry)
    return items


def _interpret_text(text: str) -> NormalizedResponse | None:
    payload = _load_json(text)
    if payload is not None:
        result = _interpret_payload(payload)
        if result is not None:
            return result
    return _match_question(text)


def _load_json(text: str) -> object | None:
    """Parse the text as JSON, or the first JSON value embedded in it."""
    try:
        return json.loads(text)
    except ValueError:
        pass
    decoder = json.JSONDecoder()
    for match in re.finditer(r"[\[{]", text):
        try:
            payload, _ = decoder.raw_decode(text, match.start())
        except ValueError:
            continue
        if isinstance(payload, dict | list):
            return payload
    return None


def _interpret_payload(payload: object) -> NormalizedResponse | None:
    if isinstance(payload, dict):
        components = decode_components(payload.get("meal_components"))
        if components:
            return ComponentsResult(
                components=components,
                meal_name=_first_string(payload, _MEAL_NAME_KEYS),
                comment=_first_string(payload, _COMMENT_KEYS),
            )
        entries: list[object] = [payload]
    elif isinstance(payload, list):
        entries = payload
    else:
        return None

    questions: list[tuple[str | None, str]] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        question = entry.get("question")
        if isinstance(question, str) and question.strip():
            questions.append((_first_string(entry, _SUBJECT_KEYS), question.strip()))
    if not questions:
        return None
    return _clarification(questions)


def _match_question(text: str) -> ClarificationResult | None:
    """Locate question/name pairs in text that is not valid JSON."""
    questions = [_unescape(match) for match in _QUESTION_PATTERN.findall(text)]
    if not questions:
        return None
    names = [_unescape(match) for match in _NAME_PATTERN.findall(text)]
    pairs = [
        (names[index] if index < len(names) else None, question)
        for index, question in enumerate(questions)
    ]
    return _clarification(pairs)


def _clarification(pairs: list[tuple[str | None, str]]) -> ClarificationResult:
    lines = [
        f"Question about {subject}: {question}" if subject else question
        for subject, question in pairs
    ]
    return ClarificationResult(question="\n".join(lines), subject=pairs[0][0])


def _unescape(value: str) -> str:
    try:
        return json.loads(f'"{value}"')
    except ValueError:
        return value


def _first_string(payload: dict, keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _error_summary(error: object) -> str | None:
    if isinstance(error, str) and error.strip():
        return error.strip()
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
    return None


def _diagnostic(attempts: _Attempts) -> str:
    parts = [
        f"meal_components={_count(attempts.component_count)}",
        f"output={_count(attempts.output_count)}",
        f"message_items={attempts.message_items}",
        f"text_length={attempts.text_length}",
    ]
    tried = ", ".join(attempts.branches) or "none"
    summary = f"no components, question or text found ({'; '.join(parts)}; tried: {tried})"
    if attempts.error:
        summary = f"{summary}; service error: {attempts.error}"
    return summary


def _count(value: int | None) -> str:
    return "absent" if value is None else str(value)

"""Unwrap the assistant's structured-output envelope before schema parsing."""

from __future__ import annotations

import json
import logging
from typing import Any

from ..failures import Failure, FailureKind
from .schema import ParseOutcome, parse_proposal

LOGGER = logging.getLogger(__name__)


class EnvelopeError(ValueError):
    """Raised when assistant output is not a usable ``{"result": ...}`` envelope."""


class AssistantReportedError(EnvelopeError):
    """Raised when the envelope flags the run itself as failed."""


def _result_text(result: Any) -> str:
    """Flatten an envelope ``result`` into the text it carries."""

    if isinstance(result, str):
        return result
    if isinstance(result, list):
        parts: list[str] = []
        for item in result:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict) and item.get("type") == "text" and isinstance(item.get("text"), str):
                parts.append(item["text"])
        return "".join(parts)
    raise EnvelopeError(f"unsupported envelope result type: {type(result).__name__}")


def unwrap_envelope(output: str) -> str:
    """Return the proposal text nested inside the assistant's JSON envelope.

    ``result`` may be a string or a list of ``{"type": "text", "text": ...}``
    blocks and plain strings, which are concatenated in order.
    """

    try:
        data = json.loads(output)
    except json.JSONDecodeError as error:
        raise EnvelopeError(f"output is not a JSON envelope ({error})") from error

    if not isinstance(data, dict) or "result" not in data:
        raise EnvelopeError("envelope has no 'result' field")

    text = _result_text(data["result"])
    if data.get("is_error") is True:
        raise AssistantReportedError(text.strip() or "assistant reported an error")
    return text


def parse_assistant_output(output: str) -> ParseOutcome:
    """Parse proposal-mode stdout, unwrapping the envelope when present.

    When unwrapping fails the raw output is parsed directly; if that also
    fails both messages are kept on the returned failure.
    """

    try:
        text = unwrap_envelope(output)
    except AssistantReportedError as error:
        return ParseOutcome(failure=Failure(FailureKind.PROCESS, str(error)))
    except EnvelopeError as envelope_error:
        LOGGER.debug("Envelope unwrapping failed, parsing raw output: %s", envelope_error)
        direct = parse_proposal(output)
        if direct.ok or direct.failure is None:
            return direct
        return ParseOutcome(failure=direct.failure.with_causes(f"envelope: {envelope_error}"))
    return parse_proposal(text)


__all__ = ["AssistantReportedError", "EnvelopeError", "parse_assistant_output", "unwrap_envelope"]

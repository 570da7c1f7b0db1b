"""Parse and validate change proposals embedded in assistant output."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from ..failures import Failure, FailureKind
from ..structured import Proposal

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ParseOutcome:
    """Either a validated proposal or the failure that rejected it."""

    proposal: Proposal | None = None
    failure: Failure | None = None

    @property
    def ok(self) -> bool:
        return self.proposal is not None and self.failure is None


def _parse_failure(message: str) -> ParseOutcome:
    return ParseOutcome(failure=Failure(FailureKind.PARSE, message))


def extract_json_object(raw_text: str) -> str | None:
    """Return the span from the first ``{`` to the last ``}`` in ``raw_text``."""

    start = raw_text.find("{")
    end = raw_text.rfind("}")
    if start == -1 or end == -1 or end < start:
        return None
    return raw_text[start : end + 1]


_CHANGE_MESSAGES = {
    "filepath": "change must have a non-empty filepath string",
    "start_line": "change must have a valid start_line (number >= 1)",
    "end_line": "change must have a valid end_line (number >= start_line)",
    "new_content": "change must have a new_content string",
    "explanation": "explanation must be a string if provided",
}


def _validation_failure(error: ValidationError) -> Failure:
    """Translate the first pydantic error into a user-facing failure."""

    detail = error.errors()[0]
    loc = detail["loc"]
    if not loc:
        return Failure(FailureKind.VALIDATION, "proposal must be a JSON object")
    if loc[0] == "summary":
        return Failure(FailureKind.VALIDATION, "summary must be a string if provided")
    if len(loc) == 1:
        if detail["type"] == "too_short":
            return Failure(FailureKind.VALIDATION, "proposal must have at least one change")
        return Failure(FailureKind.VALIDATION, "proposal must have a 'changes' array")
    field = loc[2] if len(loc) > 2 else None
    message = _CHANGE_MESSAGES.get(field, "change must be a JSON object")
    return Failure(FailureKind.VALIDATION, message, index=int(loc[1]) + 1)


def _validate(payload: Any) -> ParseOutcome:
    try:
        proposal = Proposal.model_validate(payload)
    except ValidationError as error:
        failure = _validation_failure(error)
        LOGGER.debug("Proposal rejected: %s (%s)", failure.render(), error.errors()[0]["msg"])
        return ParseOutcome(failure=failure)
    return ParseOutcome(proposal=proposal)


def validate_payload(payload: Any) -> Failure | None:
    """Return the first violation found in a decoded proposal, or ``None``."""

    return _validate(payload).failure


def parse_proposal(raw_text: str) -> ParseOutcome:
    """Extract, decode and validate a proposal from ``raw_text``.

    Surrounding prose is tolerated: only the span between the first ``{`` and
    the last ``}`` is decoded. Unknown keys are ignored. The function has no
    side effects and never raises for malformed input.
    """

    if not isinstance(raw_text, str) or not raw_text:
        return _parse_failure("empty or invalid input")

    candidate = extract_json_object(raw_text)
    if candidate is None:
        return _parse_failure("no JSON object found in response")

    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError as error:
        LOGGER.debug("Proposal JSON failed to decode: %s", error)
        return _parse_failure(f"JSON parse error: {error}")

    return _validate(payload)


__all__ = ["ParseOutcome", "extract_json_object", "parse_proposal", "validate_payload"]

"""Proposal parsing and application."""

from .applier import ApplyResult, ChangePreview, apply_proposal, fold_changes, preview_change
from .envelope import EnvelopeError, parse_assistant_output, unwrap_envelope
from .schema import ParseOutcome, parse_proposal, validate_payload

__all__ = [
    "ApplyResult",
    "ChangePreview",
    "EnvelopeError",
    "ParseOutcome",
    "apply_proposal",
    "fold_changes",
    "parse_assistant_output",
    "parse_proposal",
    "preview_change",
    "unwrap_envelope",
    "validate_payload",
]

"""Typed lookup outcomes and location-text classification."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Union

from .config import DEFAULT_NOT_FOUND_MARKERS, SENTINEL


@dataclass(frozen=True)
class Located:
    location_text: str


@dataclass(frozen=True)
class Overseas:
    pass


@dataclass(frozen=True)
class Mobile:
    pass


@dataclass(frozen=True)
class Failed:
    error: BaseException


Outcome = Union[Located, Overseas, Mobile, Failed]


@dataclass(frozen=True)
class ProcedureResult:
    """Outcome of one site procedure plus the evidence it uploaded, if any."""

    outcome: Outcome
    artifact_id: Optional[str] = None


def outcome_label(outcome: Outcome) -> str:
    if isinstance(outcome, Located):
        return "located"
    if isinstance(outcome, Overseas):
        return "overseas"
    if isinstance(outcome, Mobile):
        return "mobile"
    if isinstance(outcome, Failed):
        return "failed"
    raise TypeError(f"Unhandled outcome {outcome!r}")


def classify_location_text(
    raw: Optional[str],
    not_found_markers: Iterable[str] = DEFAULT_NOT_FOUND_MARKERS,
    sentinel: str = SENTINEL,
) -> str:
    """Return *raw* unchanged, or *sentinel* when it carries no usable address."""

    if raw is None or not raw.strip():
        return sentinel
    if any(marker and marker in raw for marker in not_found_markers):
        return sentinel
    return raw


def is_status_text(text: Optional[str], sentinel: str = SENTINEL) -> bool:
    return (text or "").strip() == sentinel


__all__ = [
    "Located",
    "Overseas",
    "Mobile",
    "Failed",
    "Outcome",
    "ProcedureResult",
    "outcome_label",
    "classify_location_text",
    "is_status_text",
]

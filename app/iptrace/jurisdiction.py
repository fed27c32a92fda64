"""Map free-text Korean addresses to the police station that covers them.

Matching runs in two tiers against the reference table:

- fine: the last 읍/면/동/리 token of the address (a trailing lot number is
  dropped) is looked up among records whose admin unit is itself fine-grained;
- coarse: when the fine tier yields nothing, the first 구, then 군, then 시
  token is looked up among records whose admin unit is coarse.

The first matching record in table order wins; there is no scoring.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

FINE_MARKERS: tuple[str, ...] = ("읍", "면", "동", "리")
COARSE_MARKERS: tuple[str, ...] = ("구", "군", "시")

_TRAILING_PAREN_RE = re.compile(r"\s*\(.*?\)\s*$")
_WHITESPACE_RE = re.compile(r"\s+")
_FINE_TOKEN_RE = re.compile(r"(\S+[" + "".join(FINE_MARKERS) + r"])\s*(\d.*)?$")
_COARSE_TOKEN_RES: tuple[tuple[str, re.Pattern[str]], ...] = tuple(
    (marker, re.compile(rf"(\S+{marker})")) for marker in COARSE_MARKERS
)


@dataclass(frozen=True)
class JurisdictionRecord:
    """One row of the station reference table."""

    station_name: str
    admin_unit: str
    jurisdiction_text: str

    def covers_fine_units(self) -> bool:
        return any(marker in self.admin_unit for marker in FINE_MARKERS)

    def covers_coarse_units(self) -> bool:
        return any(marker in self.admin_unit for marker in COARSE_MARKERS)


def normalize_location(text: str) -> str:
    """Drop a trailing parenthesised clause and collapse whitespace."""

    stripped = _TRAILING_PAREN_RE.sub("", text or "").strip()
    return _WHITESPACE_RE.sub(" ", stripped)


def extract_fine_token(normalized: str) -> Optional[str]:
    match = _FINE_TOKEN_RE.search(normalized)
    if match and match.group(1):
        return match.group(1)
    return None


def _first_record(
    records: Iterable[JurisdictionRecord], token: str, *, fine: bool
) -> Optional[JurisdictionRecord]:
    for record in records:
        tier_ok = record.covers_fine_units() if fine else record.covers_coarse_units()
        if tier_ok and token in record.jurisdiction_text:
            return record
    return None


def resolve(location_text: str, records: Sequence[JurisdictionRecord]) -> Optional[str]:
    """Return the station covering *location_text*, or ``None`` if unmatched."""

    normalized = normalize_location(location_text)
    if not normalized:
        return None

    fine_token = extract_fine_token(normalized)
    if fine_token:
        record = _first_record(records, fine_token, fine=True)
        if record is not None:
            return record.station_name

    for _marker, pattern in _COARSE_TOKEN_RES:
        match = pattern.search(normalized)
        if not match:
            continue
        record = _first_record(records, match.group(1), fine=False)
        if record is not None:
            return record.station_name

    return None


def _cell(row: Sequence[str], index: int) -> str:
    if index < len(row) and row[index] is not None:
        return str(row[index]).strip()
    return ""


def load_records(
    rows: Iterable[Sequence[str]],
    *,
    station_col: int,
    jurisdiction_col: int,
    admin_unit_col: int,
) -> tuple[JurisdictionRecord, ...]:
    """Build the immutable reference table from raw sheet rows.

    Rows without a station name (blank lines, section breaks) are skipped.
    """

    records = []
    for row in rows:
        station = _cell(row, station_col)
        if not station:
            continue
        records.append(
            JurisdictionRecord(
                station_name=station,
                admin_unit=_cell(row, admin_unit_col),
                jurisdiction_text=_cell(row, jurisdiction_col),
            )
        )
    return tuple(records)


__all__ = [
    "JurisdictionRecord",
    "normalize_location",
    "extract_fine_token",
    "resolve",
    "load_records",
    "FINE_MARKERS",
    "COARSE_MARKERS",
]

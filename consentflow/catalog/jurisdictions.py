from __future__ import annotations

"""
Jurisdiction reference data: the US-state table and a static university directory.

Design intent:
- State lookups are pure and case-insensitive on the two-letter code.
- Universities come from an injected list or a seed JSON file, never the network.
"""

import json
import logging
from pathlib import Path
from typing import Iterable, Sequence

from consentflow.internal_core.contracts import University, UsState

logger = logging.getLogger(__name__)

US_STATES: tuple[UsState, ...] = tuple(
    UsState(code=code, name=name)
    for code, name in (
        ("AL", "Alabama"),
        ("AK", "Alaska"),
        ("AZ", "Arizona"),
        ("AR", "Arkansas"),
        ("CA", "California"),
        ("CO", "Colorado"),
        ("CT", "Connecticut"),
        ("DE", "Delaware"),
        ("DC", "District of Columbia"),
        ("FL", "Florida"),
        ("GA", "Georgia"),
        ("HI", "Hawaii"),
        ("ID", "Idaho"),
        ("IL", "Illinois"),
        ("IN", "Indiana"),
        ("IA", "Iowa"),
        ("KS", "Kansas"),
        ("KY", "Kentucky"),
        ("LA", "Louisiana"),
        ("ME", "Maine"),
        ("MD", "Maryland"),
        ("MA", "Massachusetts"),
        ("MI", "Michigan"),
        ("MN", "Minnesota"),
        ("MS", "Mississippi"),
        ("MO", "Missouri"),
        ("MT", "Montana"),
        ("NE", "Nebraska"),
        ("NV", "Nevada"),
        ("NH", "New Hampshire"),
        ("NJ", "New Jersey"),
        ("NM", "New Mexico"),
        ("NY", "New York"),
        ("NC", "North Carolina"),
        ("ND", "North Dakota"),
        ("OH", "Ohio"),
        ("OK", "Oklahoma"),
        ("OR", "Oregon"),
        ("PA", "Pennsylvania"),
        ("RI", "Rhode Island"),
        ("SC", "South Carolina"),
        ("SD", "South Dakota"),
        ("TN", "Tennessee"),
        ("TX", "Texas"),
        ("UT", "Utah"),
        ("VT", "Vermont"),
        ("VA", "Virginia"),
        ("WA", "Washington"),
        ("WV", "West Virginia"),
        ("WI", "Wisconsin"),
        ("WY", "Wyoming"),
    )
)

_STATES_BY_CODE = {item.code: item for item in US_STATES}


def list_states() -> list[UsState]:
    return list(US_STATES)


def state_name(code: str) -> str:
    item = _STATES_BY_CODE.get((code or "").strip().upper())
    return item.name if item else ""


class StaticJurisdictionDirectory:
    def __init__(self, universities: Iterable[University] = ()) -> None:
        self._universities = list(universities)
        self._by_id = {item.id: item for item in self._universities}

    @classmethod
    def from_seed_file(cls, path: str | Path) -> "StaticJurisdictionDirectory":
        raw = json.loads(Path(path).expanduser().read_text(encoding="utf-8"))
        if not isinstance(raw, list):
            raise ValueError(f"University seed file must hold a JSON list: {path}")
        universities = [University.model_validate(item) for item in raw]
        logger.info("loaded %d universities from %s", len(universities), path)
        return cls(universities)

    def list_universities(self) -> list[University]:
        return list(self._universities)

    def get_university(self, university_id: str) -> University | None:
        return self._by_id.get(university_id)

    def list_states(self) -> Sequence[UsState]:
        return US_STATES

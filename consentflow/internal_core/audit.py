from __future__ import annotations

import re
from datetime import datetime, timezone

from .contracts import WizardEvent, WizardEventType
from .flow_store import InMemoryFlowStore

_MAX_DETAIL_CHARS = 200
_WS_RUN_RE = re.compile(r"\s+")


def _clip_detail(detail: str) -> str:
    # Details carry step numbers, draft ids and counts only; party names,
    # act choices and contract text stay out of the trail.
    flat = _WS_RUN_RE.sub(" ", detail or "").strip()
    if len(flat) <= _MAX_DETAIL_CHARS:
        return flat
    return flat[:_MAX_DETAIL_CHARS] + "…"


def log_event(
    store: InMemoryFlowStore,
    session_id: str,
    event_type: WizardEventType,
    code: str,
    detail: str,
) -> WizardEvent:
    """Append one wizard transition to the session's audit trail."""
    event = WizardEvent(
        ts_iso=datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
        session_id=session_id,
        type=event_type,
        code=code,
        detail=_clip_detail(detail),
    )
    store.append_audit_event(session_id, event)
    return event

from __future__ import annotations

import logging
import time
import uuid
from threading import RLock
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from .contracts import FlowState, PartyErrors, WizardEvent

logger = logging.getLogger(__name__)

StatePatch = Mapping[str, Any]
PatchSource = Union[StatePatch, Callable[[FlowState], StatePatch]]
Subscriber = Callable[[str, FlowState], None]


class InMemoryFlowStore:
    """Holds one FlowState snapshot per wizard session.

    Every write goes through ``merge_state`` or ``replace_state``. A merge is
    applied to the latest snapshot under the store lock, so a late write only
    touches the fields it names. Readers always receive copies.
    """

    def __init__(self, ttl_seconds: int, max_audit_events: int = 500):
        self._ttl_seconds = ttl_seconds
        self._max_audit_events = max(1, int(max_audit_events))
        self._lock = RLock()
        self._sessions: Dict[str, Dict[str, Any]] = {}

    def create_session(
        self,
        owner_id: str,
        state: FlowState,
        profile: Optional[Mapping[str, Any]] = None,
    ) -> str:
        session_id = uuid.uuid4().hex
        now = time.time()
        with self._lock:
            self._sessions[session_id] = {
                "session_id": session_id,
                "owner_id": owner_id,
                "profile": dict(profile or {}),
                "created_at": now,
                "updated_at": now,
                "expires_at": now + self._ttl_seconds,
                "state": state,
                "party_errors": {},
                "cursor": None,
                "save_pending": False,
                "audit_events": [],
                "subscribers": [],
            }
        return session_id

    def _require(self, session_id: str) -> Dict[str, Any]:
        session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(f"Unknown session_id: {session_id}")
        return session

    def _touch(self, session_id: str) -> None:
        now = time.time()
        session = self._sessions[session_id]
        session["updated_at"] = now
        session["expires_at"] = now + self._ttl_seconds

    def has_session(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def get_owner_id(self, session_id: str) -> str:
        with self._lock:
            return self._require(session_id)["owner_id"]

    def get_profile(self, session_id: str) -> Dict[str, Any]:
        with self._lock:
            return dict(self._require(session_id)["profile"])

    def get_state(self, session_id: str) -> FlowState:
        with self._lock:
            return self._require(session_id)["state"].model_copy(deep=True)

    def merge_state(self, session_id: str, patch: PatchSource) -> FlowState:
        """Merge a partial update into the latest snapshot.

        ``patch`` may be a mapping or a callable that derives the mapping from
        the latest snapshot; the callable runs under the store lock.
        Raises pydantic.ValidationError and leaves the snapshot untouched when
        the merged state breaks a FlowState invariant.
        """
        with self._lock:
            session = self._require(session_id)
            current: FlowState = session["state"]
            updates = patch(current.model_copy(deep=True)) if callable(patch) else patch
            if not updates:
                return current.model_copy(deep=True)
            merged = FlowState.model_validate({**current.model_dump(), **dict(updates)})
            session["state"] = merged
            self._touch(session_id)
            subscribers = list(session["subscribers"])
        self._notify(session_id, merged, subscribers)
        return merged.model_copy(deep=True)

    def replace_state(self, session_id: str, state: FlowState) -> FlowState:
        with self._lock:
            session = self._require(session_id)
            session["state"] = state
            self._touch(session_id)
            subscribers = list(session["subscribers"])
        self._notify(session_id, state, subscribers)
        return state.model_copy(deep=True)

    def _notify(self, session_id: str, state: FlowState, subscribers: List[Subscriber]) -> None:
        for callback in subscribers:
            try:
                callback(session_id, state.model_copy(deep=True))
            except Exception:
                # A subscriber must never break the write that triggered it.
                logger.exception("flow store subscriber failed session_id=%s", session_id)

    def subscribe(self, session_id: str, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._require(session_id)["subscribers"].append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                session = self._sessions.get(session_id)
                if session is not None and callback in session["subscribers"]:
                    session["subscribers"].remove(callback)

        return _unsubscribe

    def get_party_errors(self, session_id: str) -> PartyErrors:
        with self._lock:
            return dict(self._require(session_id)["party_errors"])

    def set_party_errors(self, session_id: str, errors: PartyErrors) -> None:
        with self._lock:
            self._require(session_id)["party_errors"] = dict(errors)
            self._touch(session_id)

    def get_cursor(self, session_id: str) -> Any:
        with self._lock:
            return self._require(session_id)["cursor"]

    def set_cursor(self, session_id: str, cursor: Any) -> None:
        with self._lock:
            self._require(session_id)["cursor"] = cursor
            self._touch(session_id)

    def begin_save(self, session_id: str) -> bool:
        """Claim the single in-flight save slot. False when one is pending."""
        with self._lock:
            session = self._require(session_id)
            if session["save_pending"]:
                return False
            session["save_pending"] = True
            return True

    def end_save(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                session["save_pending"] = False

    def is_save_pending(self, session_id: str) -> bool:
        with self._lock:
            return bool(self._require(session_id)["save_pending"])

    def append_audit_event(self, session_id: str, event: WizardEvent) -> None:
        with self._lock:
            events = self._require(session_id)["audit_events"]
            events.append(event)
            if len(events) > self._max_audit_events:
                del events[: len(events) - self._max_audit_events]
            self._touch(session_id)

    def get_session(self, session_id: str) -> Dict[str, Any]:
        with self._lock:
            session = self._require(session_id)
            return {
                "session_id": session["session_id"],
                "owner_id": session["owner_id"],
                "profile": dict(session["profile"]),
                "created_at": session["created_at"],
                "updated_at": session["updated_at"],
                "expires_at": session["expires_at"],
                "state": session["state"].model_copy(deep=True),
                "party_errors": dict(session["party_errors"]),
                "cursor": session["cursor"],
                "save_pending": session["save_pending"],
                "audit_events": list(session["audit_events"]),
            }

    def destroy_session(self, session_id: str, reason: str) -> Optional[str]:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return None
        logger.info("flow session destroyed session_id=%s reason=%s", session_id, reason)
        return session_id

    def cleanup_expired_sessions(self) -> int:
        now = time.time()
        expired = []
        with self._lock:
            for session_id, session in self._sessions.items():
                if session["expires_at"] <= now:
                    expired.append(session_id)
        for session_id in expired:
            self.destroy_session(session_id, reason="ttl_expired")
        return len(expired)

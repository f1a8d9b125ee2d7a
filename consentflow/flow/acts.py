from __future__ import annotations

from typing import Mapping

from consentflow.internal_core.contracts import ActState

# unset -> yes -> no -> unset; "unset" is the absence of the key.
_NEXT_STATE: dict[ActState | None, ActState | None] = {
    None: "yes",
    "yes": "no",
    "no": None,
}


def act_state(acts: Mapping[str, ActState], act_name: str) -> ActState | None:
    return acts.get(act_name)


def toggle_act(acts: Mapping[str, ActState], act_name: str) -> dict[str, ActState]:
    updated = dict(acts)
    next_state = _NEXT_STATE[updated.get(act_name)]
    if next_state is None:
        updated.pop(act_name, None)
    else:
        updated[act_name] = next_state
    return updated


def selected_acts(acts: Mapping[str, ActState]) -> list[str]:
    return [name for name, state in acts.items() if state in ("yes", "no")]

from __future__ import annotations

"""
Static encounter-type, act and recording-method tables for the consent wizard.

Design intent:
- Keep the jurisdiction requirement as data so step topology stays a lookup.
- Expose immutable tuples; nothing here is mutated at runtime.
"""

from consentflow.internal_core.contracts import EncounterType, RecordingMethodOption

INTIMATE_ENCOUNTER = EncounterType(id="intimate", label="Intimate Encounter", requires_jurisdiction=True)
OTHER_ENCOUNTER = EncounterType(id="other", label="Other")

ENCOUNTER_TYPES: tuple[EncounterType, ...] = (
    INTIMATE_ENCOUNTER,
    EncounterType(id="date", label="Date", requires_jurisdiction=True),
    EncounterType(id="conversation", label="Textual Matter"),
    EncounterType(id="medical", label="Medical"),
    EncounterType(id="professional", label="Professional"),
    OTHER_ENCOUNTER,
)

_BY_ID = {item.id: item for item in ENCOUNTER_TYPES}

INTIMATE_ACT_OPTIONS: tuple[str, ...] = (
    "Touching/Caressing",
    "Kissing",
    "Manual Stimulation",
    "Oral Stimulation",
    "Oral Intercourse",
    "Penetrative Intercourse",
    "Photography/Video Recording",
    "Other Acts (Specify in Contract)",
)

RECORDING_METHODS: tuple[RecordingMethodOption, ...] = (
    RecordingMethodOption(
        id="signature",
        label="Contract Signature",
        description="Digital signatures on consent contract",
        route="/create/consent/signature",
    ),
    RecordingMethodOption(
        id="voice",
        label="Voice Recording",
        description="Record verbal consent from both parties",
        route="/create/consent/voice",
    ),
    RecordingMethodOption(
        id="photo",
        label="Dual Selfie",
        description="Upload a photo showing mutual agreement",
        route="/create/consent/photo",
    ),
    RecordingMethodOption(
        id="biometric",
        label="Authenticate with TouchID/FaceID",
        description="Cryptographic proof using device biometrics",
        route="/create/consent/biometric",
    ),
)

_METHODS_BY_ID = {item.id: item for item in RECORDING_METHODS}


def list_encounter_types() -> list[EncounterType]:
    return list(ENCOUNTER_TYPES)


def get_encounter_type(encounter_type: str) -> EncounterType | None:
    return _BY_ID.get((encounter_type or "").strip())


def requires_jurisdiction(encounter_type: str) -> bool:
    # Custom or unknown encounter types never get a jurisdiction step.
    item = get_encounter_type(encounter_type)
    return bool(item and item.requires_jurisdiction)


def get_recording_method(method: str) -> RecordingMethodOption | None:
    return _METHODS_BY_ID.get(method)  # type: ignore[arg-type]

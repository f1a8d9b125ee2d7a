from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def _project_root() -> Path:
    # consentflow/internal_core/config.py -> consentflow -> repo root
    return Path(__file__).resolve().parents[2]


def _getenv_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None else value


def _getenv_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _getenv_opt_str(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _getenv_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


_SNAPSHOT_BACKENDS = {"memory", "file"}


@dataclass(frozen=True)
class WizardConfig:
    CONSENTFLOW_LOG_LEVEL: str
    CONSENTFLOW_SESSION_TTL_SECONDS: int
    CONSENTFLOW_DEFAULT_PARTY_SLOTS: int
    CONSENTFLOW_SNAPSHOT_ENABLED: bool
    CONSENTFLOW_SNAPSHOT_BACKEND: str
    CONSENTFLOW_SNAPSHOT_DIR: str
    CONSENTFLOW_AUDIT_MAX_EVENTS: int
    CONSENTFLOW_SEED_UNIVERSITIES_PATH: Optional[str]

    def snapshot_dir_path(self, repo_root: Path) -> Path:
        return (repo_root / self.CONSENTFLOW_SNAPSHOT_DIR).resolve()


def load_config() -> WizardConfig:
    snapshot_backend = _getenv_str("CONSENTFLOW_SNAPSHOT_BACKEND", "memory").strip().lower()
    if snapshot_backend not in _SNAPSHOT_BACKENDS:
        raise ValueError(
            f"Unsupported CONSENTFLOW_SNAPSHOT_BACKEND: {snapshot_backend} "
            f"(expected one of {sorted(_SNAPSHOT_BACKENDS)})"
        )

    party_slots = _getenv_int("CONSENTFLOW_DEFAULT_PARTY_SLOTS", 2)
    if party_slots < 1:
        raise ValueError("CONSENTFLOW_DEFAULT_PARTY_SLOTS must be >= 1")

    return WizardConfig(
        CONSENTFLOW_LOG_LEVEL=_getenv_str("CONSENTFLOW_LOG_LEVEL", "INFO").strip().upper(),
        CONSENTFLOW_SESSION_TTL_SECONDS=_getenv_int("CONSENTFLOW_SESSION_TTL_SECONDS", 14400),
        CONSENTFLOW_DEFAULT_PARTY_SLOTS=party_slots,
        CONSENTFLOW_SNAPSHOT_ENABLED=_getenv_bool("CONSENTFLOW_SNAPSHOT_ENABLED", True),
        CONSENTFLOW_SNAPSHOT_BACKEND=snapshot_backend,
        CONSENTFLOW_SNAPSHOT_DIR=_getenv_str("CONSENTFLOW_SNAPSHOT_DIR", "./tmp/flow_snapshots"),
        CONSENTFLOW_AUDIT_MAX_EVENTS=_getenv_int("CONSENTFLOW_AUDIT_MAX_EVENTS", 500),
        CONSENTFLOW_SEED_UNIVERSITIES_PATH=_getenv_opt_str("CONSENTFLOW_SEED_UNIVERSITIES_PATH"),
    )


def project_root() -> Path:
    return _project_root()

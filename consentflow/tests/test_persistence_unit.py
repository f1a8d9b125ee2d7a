import json

import pytest

from consentflow.catalog.encounter_types import get_encounter_type, requires_jurisdiction
from consentflow.catalog.jurisdictions import StaticJurisdictionDirectory, list_states, state_name
from consentflow.internal_core.contracts import DraftRecord
from consentflow.persistence import InMemoryDraftPersistence, JsonFileSnapshotStorage


def test_draft_create_requires_owner_and_encounter_type() -> None:
    persistence = InMemoryDraftPersistence()
    with pytest.raises(ValueError):
        persistence.create({"encounter_type": "date"})
    with pytest.raises(ValueError, match="Encounter type"):
        persistence.create({"user_id": "owner_1"})
    record = persistence.create({"user_id": "owner_1", "encounter_type": "date", "status": "draft", "bogus": 1})
    assert record.user_id == "owner_1"
    assert record.status == "draft"


def test_draft_update_is_owner_scoped_and_draft_only() -> None:
    persistence = InMemoryDraftPersistence()
    record = persistence.create({"user_id": "owner_1", "encounter_type": "date", "status": "draft"})
    assert persistence.update(record.id, "owner_2", {"method": "voice"}) is None
    updated = persistence.update(record.id, "owner_1", {"method": "voice", "user_id": "owner_2"})
    assert updated is not None
    assert updated.method == "voice"
    assert updated.user_id == "owner_1"

    persistence.put(DraftRecord(id="done", user_id="owner_1", status="completed"))
    assert persistence.update("done", "owner_1", {"method": "photo"}) is None
    assert persistence.fetch(record.id, "owner_2") is None


def test_json_file_snapshot_storage(tmp_path) -> None:
    storage = JsonFileSnapshotStorage(tmp_path / "snapshots")
    key = "pmy_consent_flow_state:owner/1"
    assert storage.load(key) is None

    storage.save(key, json.dumps({"encounter_type": "date"}))
    assert json.loads(storage.load(key)) == {"encounter_type": "date"}
    assert list((tmp_path / "snapshots").glob("*.tmp")) == []

    with pytest.raises(json.JSONDecodeError):
        storage.save(key, "{not json")
    assert json.loads(storage.load(key)) == {"encounter_type": "date"}

    storage.remove(key)
    assert storage.load(key) is None
    storage.remove(key)


def test_university_seed_file(tmp_path) -> None:
    seed = tmp_path / "universities.json"
    seed.write_text(json.dumps([{"id": "u1", "name": "State U", "state": "CA"}]), encoding="utf-8")
    directory = StaticJurisdictionDirectory.from_seed_file(seed)
    assert [item.name for item in directory.list_universities()] == ["State U"]
    assert directory.get_university("u1").state == "CA"
    assert directory.get_university("nope") is None

    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"id": "u1"}), encoding="utf-8")
    with pytest.raises(ValueError, match="JSON list"):
        StaticJurisdictionDirectory.from_seed_file(bad)


def test_static_catalogs() -> None:
    assert len(list_states()) == 51
    assert state_name(" tx ") == "Texas"
    assert state_name("ZZ") == ""
    assert requires_jurisdiction("date") is True
    assert requires_jurisdiction("conversation") is False
    assert requires_jurisdiction("made up") is False
    assert get_encounter_type("conversation").label == "Textual Matter"

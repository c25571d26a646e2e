"""
Unit tests for loan_tracker/store.py and loan_tracker/storage.py

Covers:
  - Persistence of projects and part payments through the storage slot.
  - Validation on add/update, including rollback of a rejected update.
  - Export/import round trip between two stores.
"""

from __future__ import annotations

import json
import logging
from decimal import Decimal

import pytest

from loan_tracker.engine import calculate_savings
from loan_tracker.errors import ImportFormatError, InvalidRecordError
from loan_tracker.storage import KeyValueStorage
from loan_tracker.store import STORAGE_KEY, init_store
from loan_tracker.transfer import record_to_dict
from tests.utils import make_record

LOAN = dict(
    name="Home loan",
    principal=Decimal("2500000"),
    annual_rate=Decimal("8.5"),
    tenure_years=20,
    start_month=4,
    start_year=2023,
)


def test_storage_get_set(storage):
    assert storage.get("missing") is None
    storage.set("slot", "one")
    storage.set("slot", "two")
    assert storage.get("slot") == "two"


def test_empty_store(store):
    assert store.list_projects() == []
    assert store.get_project("nope") is None


def test_add_project_persists(storage, store):
    project_id = store.add_project(**LOAN)
    project = store.get_project(project_id)

    assert project.name == "Home loan"
    assert project.part_payments == []
    assert project.created_at > 0
    assert project.emi_override is None

    reloaded = init_store(storage).get_project(project_id)
    assert reloaded == project


def test_projects_are_shared_through_database(database_url, store):
    project_id = store.add_project(**LOAN)
    other = KeyValueStorage(database_url)
    try:
        assert [p.id for p in init_store(other).list_projects()] == [project_id]
    finally:
        other.dispose()


def test_add_project_validates(store, storage):
    with pytest.raises(InvalidRecordError):
        store.add_project(**dict(LOAN, tenure_years=0))
    with pytest.raises(InvalidRecordError):
        store.add_project(**dict(LOAN, emi_override=Decimal("0")))
    assert store.list_projects() == []
    assert storage.get(STORAGE_KEY) is None


def test_update_project(storage, store):
    project_id = store.add_project(**LOAN)
    store.update_project(project_id, name="Renamed", emi_override=Decimal("25000"))

    project = init_store(storage).get_project(project_id)
    assert project.name == "Renamed"
    assert project.emi_override == Decimal("25000")

    store.update_project(project_id, emi_override=None)
    assert init_store(storage).get_project(project_id).emi_override is None


def test_rejected_update_rolls_back(store):
    project_id = store.add_project(**LOAN)
    with pytest.raises(InvalidRecordError):
        store.update_project(project_id, name="Bad", principal=Decimal("-1"))

    project = store.get_project(project_id)
    assert project.name == "Home loan"
    assert project.principal == Decimal("2500000")

    with pytest.raises(TypeError):
        store.update_project(project_id, tenure_years="5")
    assert store.get_project(project_id).tenure_years == 20


def test_update_rejects_unknown_fields(store):
    project_id = store.add_project(**LOAN)
    with pytest.raises(TypeError):
        store.update_project(project_id, id="other")


def test_unknown_ids_are_ignored(store):
    store.update_project("nope", name="x")
    store.delete_project("nope")
    store.remove_part_payment("nope", "pp")
    store.update_part_payment("nope", "pp", month=1, year=2024, amount=Decimal("1"))
    assert store.add_part_payment("nope", month=1, year=2024, amount=Decimal("1")) is None


def test_delete_project(storage, store):
    keep = store.add_project(**LOAN)
    drop = store.add_project(**dict(LOAN, name="Car loan"))
    store.delete_project(drop)

    assert [p.id for p in init_store(storage).list_projects()] == [keep]


def test_part_payment_lifecycle(storage, store):
    project_id = store.add_project(**LOAN)
    first = store.add_part_payment(project_id, month=3, year=2024, amount=Decimal("100000"))
    second = store.add_part_payment(project_id, month=3, year=2025, amount=Decimal("50000"))

    store.update_part_payment(project_id, first, month=4, year=2024, amount=Decimal("150000"))
    store.remove_part_payment(project_id, second)

    (pp,) = init_store(storage).get_project(project_id).part_payments
    assert pp.id == first
    assert (pp.month, pp.year, pp.amount) == (4, 2024, Decimal("150000"))


def test_part_payment_validation(store):
    project_id = store.add_project(**LOAN)
    with pytest.raises(InvalidRecordError):
        store.add_part_payment(project_id, month=13, year=2024, amount=Decimal("1000"))
    with pytest.raises(InvalidRecordError):
        store.add_part_payment(project_id, month=1, year=2024, amount=Decimal("0"))


def test_stored_project_feeds_engine(store):
    project_id = store.add_project(**LOAN)
    store.add_part_payment(project_id, month=3, year=2024, amount=Decimal("200000"))

    savings = calculate_savings(store.get_project(project_id))
    assert savings.months_saved > 0


def test_export_selected_projects(store):
    home = store.add_project(**LOAN)
    store.add_project(**dict(LOAN, name="Car loan"))

    data = store.export_projects([home])
    assert data["version"] == 1
    assert [p["name"] for p in data["projects"]] == ["Home loan"]
    assert "id" not in data["projects"][0]


def test_export_import_round_trip(store, tmp_path):
    project_id = store.add_project(**dict(LOAN, emi_override=Decimal("22000")))
    store.add_part_payment(project_id, month=3, year=2024, amount=Decimal("100000"))
    store.add_part_payment(project_id, month=3, year=2024, amount=Decimal("25000"))

    target_storage = KeyValueStorage(f"sqlite:///{tmp_path / 'other.sqlite3'}")
    try:
        target = init_store(target_storage)
        assert target.import_projects(json.loads(json.dumps(store.export_projects()))) == 1

        original = store.get_project(project_id)
        (imported,) = target.list_projects()
        assert imported.id and imported.id != original.id
        assert imported.principal == original.principal
        assert imported.annual_rate == original.annual_rate
        assert imported.tenure_years == original.tenure_years
        assert imported.emi_override == original.emi_override
        assert [(pp.month, pp.year, pp.amount) for pp in imported.part_payments] == [
            (pp.month, pp.year, pp.amount) for pp in original.part_payments
        ]
        assert len({pp.id for pp in imported.part_payments}) == 2

        assert [p.id for p in init_store(target_storage).list_projects()] == [imported.id]
    finally:
        target_storage.dispose()


def test_import_rejects_bad_payload(store):
    store.add_project(**LOAN)
    with pytest.raises(ImportFormatError):
        store.import_projects({"version": 2, "projects": []})
    with pytest.raises(ImportFormatError):
        store.import_projects({"version": 1, "projects": [{"name": "half"}]})
    assert len(store.list_projects()) == 1


def test_corrupt_slot_loads_empty(storage, caplog):
    storage.set(STORAGE_KEY, "{not json")
    with caplog.at_level(logging.WARNING, logger="loan_tracker.store"):
        store = init_store(storage)

    assert store.list_projects() == []
    assert "Ignoring unreadable project data" in caplog.text


def test_bad_stored_entry_does_not_drop_the_rest(storage, caplog):
    good = record_to_dict(make_record(id="good", created_at=1))
    bad = {k: v for k, v in record_to_dict(make_record(id="bad")).items() if k != "startYear"}
    storage.set(STORAGE_KEY, json.dumps([good, bad]))
    with caplog.at_level(logging.WARNING, logger="loan_tracker.store"):
        store = init_store(storage)

    assert [p.id for p in store.list_projects()] == ["good"]
    assert "Skipping unreadable stored project #2" in caplog.text

    store.add_project(**LOAN)
    reloaded = init_store(storage)
    assert [p.id for p in reloaded.list_projects()][0] == "good"
    assert len(reloaded.list_projects()) == 2

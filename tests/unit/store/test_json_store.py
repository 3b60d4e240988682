"""Tests for the JSON workspace store."""

import datetime as dt
import json

import pytest

from psa_engine.exceptions import InvalidStateError
from psa_engine.models import TimeEntry
from psa_engine.models.enums import ApprovalStatus
from psa_engine.store import JsonFileRecordStore
from psa_engine.store.record_store import TIME_ENTRIES


def _entry_record():
    return TimeEntry(
        organization_id="org_1",
        project_id="prj_1",
        user_id="u_1",
        date=dt.date(2024, 3, 4),
        hours=6.5,
        status=ApprovalStatus.APPROVED,
    ).to_record()


class TestJsonFileRecordStore:
    """Tests for JsonFileRecordStore persistence."""

    def test_missing_file_starts_empty(self, tmp_path):
        """Test a new workspace path gives an empty store."""
        store = JsonFileRecordStore(tmp_path / "workspace.json")
        assert store.count(TIME_ENTRIES) == 0

    def test_save_and_reload(self, tmp_path):
        """Test records come back with native types after a reload."""
        path = tmp_path / "nested" / "workspace.json"
        store = JsonFileRecordStore(path)
        entry_id = store.insert(TIME_ENTRIES, _entry_record())
        store.next_sequence("invoice:org_1:2024")
        store.save()

        reloaded = JsonFileRecordStore(path)
        record = reloaded.get(TIME_ENTRIES, entry_id)

        assert record["date"] == dt.date(2024, 3, 4)
        assert record["status"] == ApprovalStatus.APPROVED
        assert reloaded.next_sequence("invoice:org_1:2024") == 2

    def test_saved_file_is_json(self, tmp_path):
        """Test dates and enums are written in JSON form."""
        path = tmp_path / "workspace.json"
        store = JsonFileRecordStore(path)
        entry_id = store.insert(TIME_ENTRIES, _entry_record())
        store.save()

        document = json.loads(path.read_text())
        saved = next(r for r in document[TIME_ENTRIES] if r["id"] == entry_id)
        assert saved["date"] == "2024-03-04"
        assert saved["status"] == "Approved"

    def test_invalid_record_rejected_on_load(self, tmp_path):
        """Test a record failing validation raises InvalidStateError."""
        path = tmp_path / "workspace.json"
        bad = dict(_entry_record(), id="tim_bad", hours=99)
        bad["date"] = "2024-03-04"
        path.write_text(json.dumps({TIME_ENTRIES: [bad]}, default=str))

        with pytest.raises(InvalidStateError) as exc_info:
            JsonFileRecordStore(path)

        assert exc_info.value.context["record_id"] == "tim_bad"

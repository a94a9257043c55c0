"""
Tests for the Comparables Repository

Verifies:
- Upsert keyed by (user, subject property)
- Saving the same payload twice only refreshes updated_at
- Records survive a restart via the JSON file
"""

import json
import pytest
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.comp_engine import ValuationStrategy
from core.persistence import (
    ComparablesPayload,
    ComparablesRepository,
    PersistedComparablesRecord,
    get_comparables_repository,
    parse_strategy,
    reset_comparables_repository,
)


@pytest.fixture
def payload():
    return ComparablesPayload(
        selected_ids=("P1", "P2"),
        strategy=ValuationStrategy.PRICE_PER_SQM,
        cached_valuation=208000.0,
    )


@pytest.fixture
def repo_path(tmp_path):
    return tmp_path / "data" / "comparables.json"


class TestUpsert:
    """Tests for save/load semantics."""

    def test_missing_record_is_none(self):
        assert ComparablesRepository().load("u1", "uprn-1") is None

    def test_save_then_load(self, payload):
        repo = ComparablesRepository()

        saved = repo.save("u1", "uprn-1", payload)
        loaded = repo.load("u1", "uprn-1")

        assert loaded == saved
        assert loaded.payload == payload

    def test_same_payload_twice_is_idempotent(self, payload):
        repo = ComparablesRepository()

        first = repo.save("u1", "uprn-1", payload)
        second = repo.save("u1", "uprn-1", payload)

        assert repo.count() == 1
        assert second.selected_ids == first.selected_ids
        assert second.strategy is first.strategy
        assert second.cached_valuation == first.cached_valuation
        assert second.updated_at >= first.updated_at

    def test_records_keyed_by_user_and_property(self, payload):
        repo = ComparablesRepository()
        other = ComparablesPayload(("P9",), ValuationStrategy.AVERAGE)

        repo.save("u1", "uprn-1", payload)
        repo.save("u2", "uprn-1", other)
        repo.save("u1", "uprn-2", other)

        assert repo.count() == 3
        assert repo.load("u1", "uprn-1").selected_ids == ("P1", "P2")
        assert repo.load("u2", "uprn-1").selected_ids == ("P9",)
        assert len(repo.list_by_user("u1")) == 2

    def test_empty_keys_rejected(self, payload):
        repo = ComparablesRepository()

        with pytest.raises(ValueError):
            repo.save("", "uprn-1", payload)
        with pytest.raises(ValueError):
            repo.save("u1", "", payload)

    def test_delete(self, payload):
        repo = ComparablesRepository()
        repo.save("u1", "uprn-1", payload)

        assert repo.delete("u1", "uprn-1") is True
        assert repo.delete("u1", "uprn-1") is False
        assert repo.load("u1", "uprn-1") is None


class TestFilePersistence:
    """Tests for JSON file persistence."""

    def test_survives_restart(self, payload, repo_path):
        ComparablesRepository(str(repo_path)).save("u1", "uprn-1", payload)

        reloaded = ComparablesRepository(str(repo_path)).load("u1", "uprn-1")

        assert reloaded.payload == payload
        assert reloaded.user_id == "u1"

    def test_file_uses_api_field_names(self, payload, repo_path):
        ComparablesRepository(str(repo_path)).save("u1", "uprn-1", payload)

        data = json.loads(repo_path.read_text())
        record = data["records"][0]

        assert record["uprn"] == "uprn-1"
        assert record["selected_comparable_ids"] == ["P1", "P2"]
        assert record["valuation_strategy"] == "price_per_sqm"
        assert record["calculated_valuation"] == 208000.0
        assert "last_updated" in record

    def test_corrupt_file_starts_empty(self, repo_path, caplog):
        repo_path.parent.mkdir(parents=True)
        repo_path.write_text("{not json")

        with caplog.at_level("WARNING"):
            repo = ComparablesRepository(str(repo_path))

        assert repo.count() == 0
        assert "Could not load comparables repository data" in caplog.text

    def test_singleton(self, repo_path):
        reset_comparables_repository()
        try:
            first = get_comparables_repository(str(repo_path))
            assert get_comparables_repository() is first
        finally:
            reset_comparables_repository()


class TestRecordSchema:
    """Tests for record parsing."""

    def test_from_dict_defaults(self):
        record = PersistedComparablesRecord.from_dict({"uprn": 123}, user_id="u1")

        assert record.subject_property_id == "123"
        assert record.selected_ids == ()
        assert record.strategy is ValuationStrategy.AVERAGE
        assert record.cached_valuation is None
        assert record.user_id == "u1"

    @pytest.mark.parametrize("data", [
        {},
        {"uprn": "1", "selected_comparable_ids": "P1"},
        {"uprn": "1", "valuation_strategy": "median"},
    ])
    def test_from_dict_rejects_malformed(self, data):
        with pytest.raises(ValueError):
            PersistedComparablesRecord.from_dict(data)

    def test_parse_strategy(self):
        assert parse_strategy(None) is ValuationStrategy.AVERAGE
        assert parse_strategy("PRICE_PER_SQM") is ValuationStrategy.PRICE_PER_SQM
        with pytest.raises(ValueError):
            parse_strategy("median")

    def test_default_dict(self):
        assert PersistedComparablesRecord.default_dict("uprn-1") == {
            "uprn": "uprn-1",
            "selected_comparable_ids": [],
            "valuation_strategy": "average",
            "calculated_valuation": None,
        }

"""
Tests for the comparables CLI.
"""

import json
import pytest
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from reporting.cli import main
from utils.formatting import format_currency, format_date, format_distance


@pytest.fixture
def property_file(tmp_path):
    """Provider response with four nearby sales (one property sold twice)."""
    nearby = [
        {"street_group_property_id": "A", "price": 200000, "transaction_date": "2024-03-01",
         "number_of_bedrooms": 3, "price_per_square_metre": 2500},
        {"street_group_property_id": "B", "price": 220000, "transaction_date": "2024-05-01",
         "number_of_bedrooms": 3, "price_per_square_metre": 2700},
        {"street_group_property_id": "C", "price": 210000, "transaction_date": "2023-11-20",
         "number_of_bedrooms": 4},
        {"street_group_property_id": "A", "price": 150000, "transaction_date": "2015-07-01"},
    ]
    path = tmp_path / "property.json"
    path.write_text(json.dumps({"data": {"attributes": {"nearby_completed_transactions": nearby}}}))
    return path


class TestValueCommand:

    def test_average_valuation(self, property_file, capsys):
        exit_code = main(["value", str(property_file), "--select", "A", "B", "C"])

        out = capsys.readouterr().out
        assert exit_code == 0
        assert "Comparables (3 matching)" in out
        assert "£210,000 (based on 3 comparables using simple average)" in out

    def test_price_per_sqm_reports_unused(self, property_file, capsys):
        exit_code = main([
            "value", str(property_file), "--area", "80",
            "--strategy", "price_per_sqm", "--select", "A", "B", "C",
        ])

        out = capsys.readouterr().out
        assert exit_code == 0
        assert "£208,000 (based on 2 comparables using price per square metre)" in out
        assert "1 selected comparable(s) not used" in out

    def test_filters_apply_to_listing(self, property_file, capsys):
        main(["value", str(property_file), "--bedrooms", "4"])

        out = capsys.readouterr().out
        assert "Comparables (1 matching)" in out
        assert "No valuation available - select comparables" in out

    def test_no_matches(self, property_file, capsys):
        main(["value", str(property_file), "--property-type", "Castle"])

        assert "No comparables match the current filters" in capsys.readouterr().out

    def test_unknown_comparable(self, property_file, capsys):
        exit_code = main(["value", str(property_file), "--select", "Z"])

        assert exit_code == 1
        assert "Z" in capsys.readouterr().err

    def test_unknown_comparable_leaves_stored_selection(self, property_file, tmp_path, capsys):
        data_file = tmp_path / "comparables.json"
        main(["value", str(property_file), "--data-file", str(data_file), "--select", "B"])
        before = data_file.read_text()

        exit_code = main([
            "value", str(property_file), "--data-file", str(data_file),
            "--strategy", "price_per_sqm", "--select", "A", "NOPE",
        ])

        assert exit_code == 1
        assert data_file.read_text() == before
        stored = json.loads(before)["records"][0]
        assert stored["selected_comparable_ids"] == ["B"]
        assert stored["valuation_strategy"] == "average"

    def test_invalid_filter(self, property_file, capsys):
        exit_code = main(["value", str(property_file), "--bedrooms", "lots"])

        assert exit_code == 1
        assert "Invalid filter" in capsys.readouterr().err

    def test_selection_kept_between_runs(self, property_file, tmp_path, capsys):
        data_file = str(tmp_path / "comparables.json")
        main(["value", str(property_file), "--data-file", data_file, "--select", "B"])
        capsys.readouterr()

        main(["value", str(property_file), "--data-file", data_file])

        out = capsys.readouterr().out
        assert "£220,000 (based on 1 comparable using simple average)" in out


class TestInputErrors:

    def test_missing_file(self, tmp_path, capsys):
        assert main(["summary", str(tmp_path / "missing.json")]) == 1
        assert "Could not read transactions" in capsys.readouterr().err

    def test_invalid_json(self, tmp_path, capsys):
        path = tmp_path / "bad.json"
        path.write_text("{oops")

        assert main(["value", str(path)]) == 1


class TestSummaryCommand:

    def test_summary_counts(self, property_file, capsys):
        assert main(["summary", str(property_file)]) == 0

        out = capsys.readouterr().out
        assert "Total transactions:  4" in out
        assert "Unique properties:   3" in out
        assert "Duplicates removed:  1" in out


class TestFormatting:

    @pytest.mark.parametrize("amount,expected", [
        (210000, "£210,000"),
        (207999.6, "£208,000"),
        (None, "£0"),
    ])
    def test_format_currency(self, amount, expected):
        assert format_currency(amount) == expected

    @pytest.mark.parametrize("metres,expected", [
        (None, "0m"),
        (50, "50m"),
        (805, "0.8km"),
    ])
    def test_format_distance(self, metres, expected):
        assert format_distance(metres) == expected

    def test_format_date(self):
        from datetime import date

        assert format_date(date(2023, 6, 15)) == "15 Jun 2023"

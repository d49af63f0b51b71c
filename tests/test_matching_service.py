"""
Tests for the matching request/response boundary.
"""

import pytest

from csv_recon.config import ReconConfig, ServiceSettings
from csv_recon.services.matching_service import (
    handle_match_request,
    parse_match_request,
    serialize_transaction,
)
from csv_recon.utils.exceptions import ConfigurationError, RequestValidationError

from conftest import txn_a


def request_body(bank_source, ledger_source, config):
    return {
        "sourceA": {"headers": bank_source.headers, "rows": bank_source.rows, "filename": "bank.csv"},
        "sourceB": {"headers": ledger_source.headers, "rows": ledger_source.rows},
        "config": config,
    }


WIRE_CONFIG = {
    "rules": [
        {
            "columnA": "Amount",
            "columnB": "Value",
            "matchType": "tolerance_numeric",
            "toleranceNumericMode": "fixed",
            "toleranceValue": 0.01,
            "weight": 0.5,
        },
        {
            "columnA": "Date",
            "columnB": "Posted",
            "matchType": "tolerance_date",
            "toleranceValue": 3,
            "weight": 0.2,
        },
        {"columnA": "Reference", "columnB": "Ref", "matchType": "exact", "weight": 0.3},
    ],
    "minConfidenceThreshold": 0.7,
    "matchingType": "oneToOne",
}


class TestHandleMatchRequest:
    """Tests for handle_match_request."""

    def test_response_shape(self, bank_source, ledger_source):
        body = handle_match_request(request_body(bank_source, ledger_source, WIRE_CONFIG))

        assert set(body) == {"matched", "unmatchedA", "unmatchedB", "config", "stats"}
        assert len(body["matched"]) == 3
        stats = body["stats"]
        assert stats["matchedCount"] == 3
        assert stats["unmatchedACount"] == 1
        assert stats["unmatchedBCount"] == 1
        assert stats["matchRate"] == pytest.approx(0.75)
        assert stats["processingTimeMs"] >= 0
        assert body["config"]["rules"][0]["columnB"] == "Value"

    def test_transactions_use_wire_keys(self, bank_source, ledger_source):
        body = handle_match_request(request_body(bank_source, ledger_source, WIRE_CONFIG))

        unmatched = body["unmatchedB"][0]
        assert unmatched["id"] == "sourceB-3"
        assert unmatched["rowIndex"] == 3
        assert unmatched["date"] == "2025-01-09"
        assert unmatched["amount"] == "40.00"
        assert unmatched["raw"]["Vendor"] == "Hooli"

    def test_invalid_config_is_reported(self, bank_source, ledger_source):
        config = dict(WIRE_CONFIG, minConfidenceThreshold=1.5)
        with pytest.raises(ConfigurationError) as exc_info:
            handle_match_request(request_body(bank_source, ledger_source, config))
        assert exc_info.value.field == "min_confidence_threshold"

    def test_numeric_cells_are_stringified(self):
        payload = {
            "sourceA": {"headers": ["Amount", "Ref"], "rows": [{"Amount": 10.5, "Ref": "X"}]},
            "sourceB": {"headers": ["Amount", "Ref"], "rows": [{"Amount": "10.50", "Ref": "X"}]},
            "config": {
                "rules": [
                    {
                        "columnA": "Amount",
                        "columnB": "Amount",
                        "matchType": "tolerance_numeric",
                        "toleranceValue": 0,
                        "toleranceNumericMode": "fixed",
                    }
                ]
            },
        }
        body = handle_match_request(payload)
        assert body["stats"]["matchedCount"] == 1
        assert body["matched"][0]["transactionsA"][0]["raw"]["Amount"] == "10.5"


class TestParseMatchRequest:
    """Tests for request envelope checks."""

    def test_rejects_non_object(self):
        with pytest.raises(RequestValidationError):
            parse_match_request([1, 2, 3])

    def test_rejects_missing_source(self):
        with pytest.raises(RequestValidationError) as exc_info:
            parse_match_request({"sourceA": {"headers": [], "rows": []}, "config": {}})
        assert "sourceB" in str(exc_info.value)

    def test_rejects_oversized_request(self):
        settings = ReconConfig(service=ServiceSettings(max_total_rows=2))
        rows = [{"Amount": "1"}] * 2
        payload = {
            "sourceA": {"headers": ["Amount"], "rows": rows},
            "sourceB": {"headers": ["Amount"], "rows": rows},
            "config": {},
        }
        with pytest.raises(RequestValidationError):
            parse_match_request(payload, settings)


class TestSerializeTransaction:
    """Tests for serialize_transaction."""

    def test_missing_values_are_null(self):
        body = serialize_transaction(txn_a(4, None, None, None))
        assert body["id"] == "sourceA-4"
        assert body["amount"] is None
        assert body["date"] is None
        assert body["reference"] is None

"""
Tests for normalization suggestions.
"""

from csv_recon.models.transaction import ColumnMapping, SourceData
from csv_recon.normalization.suggestions import (
    SuggestionTier,
    apply_suggestion,
    apply_to_transactions,
    suggest_for_sources,
    suggest_normalizations,
)

from conftest import txn_a


class TestSuggestNormalizations:
    """Tests for suggest_normalizations."""

    def test_groups_case_punctuation_and_abbreviation_variants(self):
        suggestions = suggest_normalizations(
            "Vendor",
            ["Acme Corporation", "Acme Corporation", "ACME Corp."],
            ["acme corp", "Globex"],
        )

        assert len(suggestions) == 1
        suggestion = suggestions[0]
        assert suggestion.canonical == "Acme Corporation"
        assert suggestion.originals == {"ACME Corp.", "acme corp"}
        for mapping in suggestion.mappings:
            assert mapping.normalized == "Acme Corporation"
            assert mapping.confidence is SuggestionTier.HIGH

    def test_most_frequent_value_is_canonical(self):
        suggestions = suggest_normalizations(
            "Vendor", ["Initech Ltd", "Initech Ltd"], ["Initech Ltd", "Initech Limited"]
        )
        assert suggestions[0].canonical == "Initech Ltd"
        assert suggestions[0].mappings[0].original == "Initech Limited"
        assert suggestions[0].mappings[0].occurrences == 1

    def test_spelling_variant_above_threshold(self):
        suggestions = suggest_normalizations("Vendor", ["Umbrella Holdings"], ["Umbrela Holdings"])

        assert len(suggestions) == 1
        mapping = suggestions[0].mappings[0]
        assert mapping.similarity >= 0.9
        assert mapping.confidence is SuggestionTier.HIGH

    def test_unrelated_values_are_not_grouped(self):
        assert suggest_normalizations("Vendor", ["Acme"], ["Globex", "Initech"]) == []

    def test_threshold_controls_grouping(self):
        values = ["Northwind Traders"], ["Northwind Trading Co"]
        assert suggest_normalizations("Vendor", *values, threshold=0.99) == []
        assert len(suggest_normalizations("Vendor", *values, threshold=0.6)) == 1

    def test_blank_and_punctuation_only_values_are_ignored(self):
        assert suggest_normalizations("Vendor", ["", "   ", None], ["--", "..."]) == []

    def test_result_is_deterministic(self):
        values_a = ["Acme Inc", "ACME Inc.", "Globex", "globex"]
        values_b = ["Acme Incorporated", "Globex", "Soylent"]
        first = suggest_normalizations("Vendor", values_a, values_b)
        second = suggest_normalizations("Vendor", values_a, values_b)
        assert first == second


class TestApplySuggestion:
    """Tests for rewriting data with a suggestion."""

    def test_rewrites_source_rows(self):
        source = SourceData(
            headers=["Vendor", "Amount"],
            rows=[{"Vendor": "ACME Corp.", "Amount": "1"}, {"Vendor": "Globex", "Amount": "2"}],
        )
        suggestion = suggest_normalizations(
            "Vendor", ["Acme Corporation", "Acme Corporation"], ["ACME Corp."]
        )[0]

        rewritten = apply_suggestion(source, suggestion)

        assert rewritten.rows[0]["Vendor"] == "Acme Corporation"
        assert rewritten.rows[1]["Vendor"] == "Globex"
        assert source.rows[0]["Vendor"] == "ACME Corp."

    def test_suggest_for_sources_reads_both_sides(self, bank_source, ledger_source):
        bank = SourceData(
            headers=bank_source.headers + ["Vendor"],
            rows=[dict(row, Vendor=row["Payee"]) for row in bank_source.rows],
        )

        suggestions = suggest_for_sources(bank, ledger_source, "Vendor")

        canonical = {s.canonical for s in suggestions}
        assert canonical == {"Globex Incorporated", "ACME Corporation"}

    def test_rewrites_transactions_and_reference(self):
        transactions = [txn_a(0, "1", reference="acme corp"), txn_a(1, "2", reference="Globex")]
        suggestion = suggest_normalizations(
            "Reference", ["Acme Corporation", "Acme Corporation"], ["acme corp"]
        )[0]
        mapping = ColumnMapping(amount="Amount", date="Date", reference="Reference")

        rewritten = apply_to_transactions(transactions, suggestion, mapping)

        assert rewritten[0].raw["Reference"] == "Acme Corporation"
        assert rewritten[0].reference == "Acme Corporation"
        assert rewritten[1] is transactions[1]
        assert transactions[0].raw["Reference"] == "acme corp"

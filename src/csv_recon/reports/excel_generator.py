"""
Excel report generator for reconciliation results.
Creates multi-sheet workbooks with formatted output.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Sequence
import logging

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Border, Side
from openpyxl.worksheet.worksheet import Worksheet

from ..analysis.hints import AnomalyHint, hints_for
from ..analysis.risk_scan import AnomalyReport
from ..config import MatchType, ReconConfig, SheetConfig
from ..models.transaction import (
    ConfidenceLevel,
    ReconciliationResult,
    ReconciliationSummary,
    Transaction,
)
from ..utils.exceptions import ReportGenerationError

logger = logging.getLogger(__name__)

# Style definitions
HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True)
MATCH_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
VARIANCE_FILL = PatternFill(start_color="FFEB9C", end_color="FFEB9C", fill_type="solid")
UNMATCHED_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)


def _amount(txn: Transaction) -> Any:
    return float(txn.amount) if txn.amount is not None else ""


def _date(txn: Transaction) -> Any:
    return txn.date if txn.date is not None else ""


class ExcelReportGenerator:
    """Generates Excel reconciliation reports with multiple sheets."""

    def __init__(self, config: ReconConfig):
        """
        Initialize the report generator.

        Args:
            config: Application configuration
        """
        self.config = config
        self.sheet_config = config.output.sheets

    def generate_report(
        self,
        summary: ReconciliationSummary,
        result: ReconciliationResult,
        output_path: Path,
        anomaly_report: Optional[AnomalyReport] = None,
        hints: Sequence[AnomalyHint] = (),
    ) -> Path:
        """
        Generate the complete reconciliation report.

        Args:
            summary: Reconciliation summary
            result: Engine output
            output_path: Path for output file
            anomaly_report: Risk scan output, if run
            hints: Unmatched-record hints

        Returns:
            Path to generated report

        Raises:
            ReportGenerationError: If the workbook cannot be written
        """
        logger.info(f"Generating Excel report: {output_path}")

        wb = Workbook()

        # Remove default sheet
        if wb.active:
            wb.remove(wb.active)

        sheets = self.sheet_config
        if sheets.summary.enabled:
            self._create_summary_sheet(wb, sheets.summary, summary)
        if sheets.matched.enabled:
            self._create_matched_sheet(wb, sheets.matched, result)
        if sheets.unmatched_a.enabled:
            self._create_unmatched_sheet(wb, sheets.unmatched_a, result.unmatched_a, hints)
        if sheets.unmatched_b.enabled:
            self._create_unmatched_sheet(wb, sheets.unmatched_b, result.unmatched_b, hints)
        if sheets.anomalies.enabled:
            self._create_anomalies_sheet(wb, sheets.anomalies, anomaly_report, hints)
        if sheets.audit_trail.enabled:
            self._create_audit_trail_sheet(wb, sheets.audit_trail, summary, result)

        if not wb.sheetnames:
            wb.create_sheet(sheets.summary.name)

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            wb.save(output_path)
        except OSError as e:
            raise ReportGenerationError(f"Failed to write report {output_path}: {e}") from e

        logger.info(f"Report saved: {output_path}")
        return output_path

    def _write_header_row(self, ws: Worksheet, row: int, headers: Sequence[str]) -> None:
        for col, header in enumerate(headers, start=1):
            cell = ws.cell(row=row, column=col, value=header)
            cell.fill = HEADER_FILL
            cell.font = HEADER_FONT
            cell.border = THIN_BORDER

    def _create_summary_sheet(
        self, wb: Workbook, sheet: SheetConfig, summary: ReconciliationSummary
    ) -> None:
        """Create the summary sheet with key metrics."""
        ws = wb.create_sheet(sheet.name)

        ws["A1"] = "Reconciliation Summary"
        ws["A1"].font = Font(size=16, bold=True)
        ws.merge_cells("A1:D1")

        ws["A3"] = "File Information"
        ws["A3"].font = Font(bold=True)

        file_info = [
            ("Source A File:", summary.source_a_filename),
            ("Source B File:", summary.source_b_filename),
            (
                "Reconciliation Date:",
                summary.reconciliation_date.strftime("%Y-%m-%d %H:%M:%S"),
            ),
        ]
        for i, (label, value) in enumerate(file_info, start=4):
            ws[f"A{i}"] = label
            ws[f"B{i}"] = str(value)

        ws["A8"] = "Transaction Counts"
        ws["A8"].font = Font(bold=True)

        count_data = [
            ("Total Source A Transactions:", summary.total_a),
            ("Total Source B Transactions:", summary.total_b),
            ("Matched Pairs:", summary.matched_count),
            ("Unmatched in Source A:", summary.unmatched_a_count),
            ("Unmatched in Source B:", summary.unmatched_b_count),
            ("Amount Variances:", summary.variance_count),
        ]
        for i, (label, value) in enumerate(count_data, start=9):
            ws[f"A{i}"] = label
            ws[f"B{i}"] = value

        ws["A16"] = "Match Rates"
        ws["A16"].font = Font(bold=True)
        ws["A17"] = "Source A Match Rate:"
        ws["B17"] = f"{summary.match_rate_a:.1f}%"
        ws["A18"] = "Source B Match Rate:"
        ws["B18"] = f"{summary.match_rate_b:.1f}%"

        ws["A20"] = "Amounts"
        ws["A20"].font = Font(bold=True)
        ws["A21"] = "Matched Amount (Source A):"
        ws["B21"] = f"{summary.matched_amount:,.2f}"
        ws["A22"] = "Total Amount Variance:"
        ws["B22"] = f"{summary.total_amount_variance:,.2f}"

        ws["A24"] = "Matches by Confidence"
        ws["A24"].font = Font(bold=True)
        row = 25
        for level in ConfidenceLevel:
            ws[f"A{row}"] = level.value
            ws[f"B{row}"] = summary.matches_by_level.get(level.value, 0)
            row += 1

        ws.column_dimensions["A"].width = 30
        ws.column_dimensions["B"].width = 40

    def _create_matched_sheet(
        self, wb: Workbook, sheet: SheetConfig, result: ReconciliationResult
    ) -> None:
        """Create the matched pairs sheet."""
        ws = wb.create_sheet(sheet.name)

        headers = [
            "A Row",
            "A Date",
            "A Reference",
            "A Amount",
            "B Row",
            "B Date",
            "B Reference",
            "B Amount",
            "Confidence",
            "Level",
            "Amount Variance",
            "Date Variance (Days)",
        ]
        self._write_header_row(ws, 1, headers)

        for row_num, match in enumerate(result.matched, start=2):
            txn_a = match.transactions_a[0]
            txn_b = match.transactions_b[0]
            variance = match.amount_variance

            row_data = [
                txn_a.row_index,
                _date(txn_a),
                txn_a.reference or "",
                _amount(txn_a),
                txn_b.row_index,
                _date(txn_b),
                txn_b.reference or "",
                _amount(txn_b),
                round(match.confidence, 4),
                match.confidence_level.value,
                float(variance) if variance else "",
                match.date_variance_days if match.date_variance_days else "",
            ]

            for col, value in enumerate(row_data, start=1):
                cell = ws.cell(row=row_num, column=col, value=value)
                cell.border = THIN_BORDER

                # Highlight variances
                if variance and col in [11, 12]:
                    cell.fill = VARIANCE_FILL
                elif match.confidence_level is ConfidenceLevel.HIGH:
                    cell.fill = MATCH_FILL

        self._auto_fit_columns(ws)

    def _create_unmatched_sheet(
        self,
        wb: Workbook,
        sheet: SheetConfig,
        transactions: Sequence[Transaction],
        hints: Sequence[AnomalyHint],
    ) -> None:
        """Create an unmatched records sheet with the original columns."""
        ws = wb.create_sheet(sheet.name)

        raw_columns: list[str] = []
        for txn in transactions:
            for column in txn.raw:
                if column not in raw_columns:
                    raw_columns.append(column)

        headers = ["Row", "Date", "Reference", "Amount", "Hints"] + raw_columns
        self._write_header_row(ws, 1, headers)

        for row_num, txn in enumerate(transactions, start=2):
            hint_text = "; ".join(h.message for h in hints_for(hints, txn))
            row_data = [
                txn.row_index,
                _date(txn),
                txn.reference or "",
                _amount(txn),
                hint_text,
            ] + [txn.raw.get(column, "") for column in raw_columns]

            for col, value in enumerate(row_data, start=1):
                cell = ws.cell(row=row_num, column=col, value=value)
                cell.border = THIN_BORDER
                cell.fill = UNMATCHED_FILL

        self._auto_fit_columns(ws)

    def _create_anomalies_sheet(
        self,
        wb: Workbook,
        sheet: SheetConfig,
        anomaly_report: Optional[AnomalyReport],
        hints: Sequence[AnomalyHint],
    ) -> None:
        """Create the anomalies sheet: risk scan findings, then record hints."""
        ws = wb.create_sheet(sheet.name)

        headers = ["Severity", "Type", "Risk Score", "Title", "Description", "Rows", "Action"]
        self._write_header_row(ws, 1, headers)

        row = 2
        anomalies = anomaly_report.anomalies if anomaly_report else ()
        for anomaly in anomalies:
            rows = ", ".join(
                f"{t.source.label} {t.row_index}" for t in anomaly.affected
            )
            row_data = [
                anomaly.severity.value,
                anomaly.type.value,
                anomaly.risk_score,
                anomaly.title,
                anomaly.description,
                rows,
                anomaly.recommended_action,
            ]
            for col, value in enumerate(row_data, start=1):
                ws.cell(row=row, column=col, value=value).border = THIN_BORDER
            row += 1

        if hints:
            row += 1
            ws[f"A{row}"] = "Unmatched Record Hints"
            ws[f"A{row}"].font = Font(bold=True)
            row += 1
            self._write_header_row(ws, row, ["Kind", "Source", "Row", "Reference", "Detail"])
            row += 1
            for hint in hints:
                row_data = [
                    hint.kind.value,
                    hint.source.label,
                    hint.row_index,
                    hint.reference or "",
                    hint.message,
                ]
                for col, value in enumerate(row_data, start=1):
                    ws.cell(row=row, column=col, value=value).border = THIN_BORDER
                row += 1

        self._auto_fit_columns(ws)

    def _create_audit_trail_sheet(
        self,
        wb: Workbook,
        sheet: SheetConfig,
        summary: ReconciliationSummary,
        result: ReconciliationResult,
    ) -> None:
        """Create the audit trail sheet with the rules that produced the result."""
        ws = wb.create_sheet(sheet.name)

        ws["A1"] = "Reconciliation Audit Trail"
        ws["A1"].font = Font(size=14, bold=True)

        config = result.config
        audit_info = [
            ("Generated At:", datetime.now().strftime("%Y-%m-%d %H:%M:%S")),
            ("Config File:", summary.config_file_used or "Default"),
            ("Processing Time:", f"{summary.processing_time_seconds:.2f} seconds"),
            ("Matching Type:", config.matching_type),
            ("Minimum Confidence:", config.min_confidence_threshold),
        ]

        row = 3
        for label, value in audit_info:
            ws[f"A{row}"] = label
            ws[f"B{row}"] = value
            row += 1

        row += 1
        ws[f"A{row}"] = "Matching Rules"
        ws[f"A{row}"].font = Font(bold=True)
        row += 1

        headers = ["#", "Id", "Column A", "Column B", "Match Type", "Weight", "Parameters"]
        self._write_header_row(ws, row, headers)
        row += 1

        for index, rule in enumerate(config.rules):
            if rule.similarity_threshold is not None:
                params = f"similarity >= {rule.similarity_threshold}"
            elif rule.tolerance_value is not None:
                params = f"tolerance {rule.tolerance_value}"
                if rule.match_type is MatchType.TOLERANCE_NUMERIC:
                    params += f" ({rule.tolerance_numeric_mode.value})"
            else:
                params = ""
            rule_data = [
                index,
                rule.id or "",
                rule.column_a,
                rule.column_b,
                rule.match_type.value,
                rule.weight,
                params,
            ]
            for col, value in enumerate(rule_data, start=1):
                ws.cell(row=row, column=col, value=value)
            row += 1

        self._auto_fit_columns(ws)

    def _auto_fit_columns(self, ws: Worksheet) -> None:
        """Auto-fit column widths based on content."""
        for column_cells in ws.columns:
            max_length = 0
            column = column_cells[0].column_letter

            for cell in column_cells:
                if cell.value is not None:
                    max_length = max(max_length, len(str(cell.value)))

            adjusted_width = min(max_length + 2, 50)
            ws.column_dimensions[column].width = adjusted_width

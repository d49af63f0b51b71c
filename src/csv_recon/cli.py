"""
Command-line interface for the CSV transaction reconciliation tool.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional
import json
import sys
import time

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .analysis.hints import detect_unmatched_hints
from .analysis.risk_scan import scan_result
from .config import (
    RULE_TEMPLATES,
    ReconConfig,
    default_rules_for_headers,
    generate_default_config,
    load_config,
    matching_config_from_template,
)
from .matching.engine import ReconciliationEngine
from .matching.validation import collect_config_issues
from .models.transaction import SourceData
from .normalization.quality_scan import scan_data_quality
from .normalization.suggestions import suggest_for_sources
from .parsers.csv_loader import CsvSourceLoader
from .reports.excel_generator import ExcelReportGenerator
from .services.collaborators import RuleBasedExplanationService, explain_unmatched
from .services.matching_service import serialize_result
from .utils.exceptions import CollaboratorError, CollaboratorTimeoutError, ReconciliationError
from .utils.logging_config import setup_logging_from_config

console = Console()


@click.group()
@click.version_option(version="0.1.0")
def main():
    """Rule-driven reconciliation of two transaction CSV files."""
    pass


def _load_sources(recon_config: ReconConfig, source_a: Path, source_b: Path) -> tuple[SourceData, SourceData]:
    loader = CsvSourceLoader(recon_config.input)
    return loader.load(source_a), loader.load(source_b)


def _resolve_rules(
    recon_config: ReconConfig,
    config_path: Optional[Path],
    data_a: SourceData,
    data_b: SourceData,
    template: Optional[str] = None,
) -> None:
    """Apply a rule template, or without a config file guess starter rules from the headers."""
    if template is not None:
        recon_config.matching = matching_config_from_template(template, data_a.headers, data_b.headers)
    elif config_path is None and data_a.headers and data_b.headers:
        rules = default_rules_for_headers(data_a.headers, data_b.headers, data_a.rows, data_b.rows)
        recon_config.matching = recon_config.matching.model_copy(update={"rules": rules})


@main.command()
@click.argument("source_a", type=click.Path(exists=True, path_type=Path))
@click.argument("source_b", type=click.Path(exists=True, path_type=Path))
@click.option(
    "-c",
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file (YAML)",
)
@click.option(
    "-t",
    "--template",
    type=click.Choice(sorted(RULE_TEMPLATES)),
    default=None,
    help="Use a built-in rule template instead of the configured rules",
)
@click.option("-o", "--output", type=click.Path(path_type=Path), help="Output Excel file path")
@click.option(
    "--json", "json_output", type=click.Path(path_type=Path), help="Write the JSON response to a file"
)
@click.option(
    "--min-confidence", type=float, default=None, help="Override the minimum confidence threshold"
)
@click.option("--workers", type=int, default=None, help="Threads used for candidate scoring")
@click.option(
    "--explain", type=int, default=0, help="Explain up to N unmatched records"
)
@click.option("--log-file", type=click.Path(path_type=Path), help="Also log to this file")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option(
    "--dry-run", is_flag=True, help="Run the match and show the summary without writing files"
)
def reconcile(
    source_a: Path,
    source_b: Path,
    config: Optional[Path],
    template: Optional[str],
    output: Optional[Path],
    json_output: Optional[Path],
    min_confidence: Optional[float],
    workers: Optional[int],
    explain: int,
    log_file: Optional[Path],
    verbose: bool,
    dry_run: bool,
):
    """
    Reconcile two transaction CSV exports.

    SOURCE_A: Path to the first CSV file
    SOURCE_B: Path to the second CSV file
    """
    try:
        recon_config = load_config(config)
        setup_logging_from_config(recon_config.logging, verbose, log_file)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Reading source files...", total=None)
            data_a, data_b = _load_sources(recon_config, source_a, source_b)
            _resolve_rules(recon_config, config, data_a, data_b, template)
            progress.update(task, completed=True)

            # Apply command-line overrides
            if min_confidence is not None:
                recon_config.matching.min_confidence_threshold = min_confidence
            if workers is not None:
                recon_config.engine.max_workers = workers

            task = progress.add_task("Running reconciliation...", total=None)
            start = time.perf_counter()

            engine = ReconciliationEngine(recon_config.engine)
            result = engine.reconcile_sources(data_a, data_b, recon_config.matching)

            processing_time = time.perf_counter() - start
            progress.update(task, completed=True)

            summary = engine.generate_summary(
                result,
                source_a_filename=source_a.name,
                source_b_filename=source_b.name,
                processing_time=processing_time,
                config_file=recon_config.config_file_path,
            )

            task = progress.add_task("Scanning for anomalies...", total=None)
            hints = detect_unmatched_hints(
                result, default_window=recon_config.anomalies.default_date_window_days
            )
            anomaly_report = scan_result(result, recon_config.anomalies)
            progress.update(task, completed=True)

        _display_summary(summary)
        console.print(
            f"\nHints: {len(hints)}  |  Anomalies: {len(anomaly_report.anomalies)} "
            f"(critical {anomaly_report.counts.get('critical', 0)}, "
            f"high {anomaly_report.counts.get('high', 0)})"
        )

        if explain > 0:
            _display_explanations(result, hints, explain, recon_config)

        if dry_run:
            console.print("\n[yellow]Dry run - no files written[/yellow]")
            return

        if json_output is not None:
            body = serialize_result(result, int(round(processing_time * 1000)))
            body["hints"] = [hint.to_dict() for hint in hints]
            body["anomalyReport"] = anomaly_report.to_dict()
            json_output.parent.mkdir(parents=True, exist_ok=True)
            json_output.write_text(json.dumps(body, indent=2))
            console.print(f"[green]JSON written: {json_output}[/green]")

        if output is None and json_output is None:
            filename_template = recon_config.output.excel.filename_template
            now = datetime.now()
            output = Path(
                filename_template.format(date=now.strftime("%Y%m%d"), time=now.strftime("%H%M%S"))
            )

        if output is not None:
            report_generator = ExcelReportGenerator(recon_config)
            report_path = report_generator.generate_report(
                summary=summary,
                result=result,
                output_path=output,
                anomaly_report=anomaly_report,
                hints=hints,
            )
            console.print(f"\n[green]Report generated: {report_path}[/green]")

    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        if verbose:
            console.print_exception()
        sys.exit(1)


@main.command("validate-config")
@click.argument("source_a", required=False, type=click.Path(exists=True, path_type=Path))
@click.argument("source_b", required=False, type=click.Path(exists=True, path_type=Path))
@click.option("-c", "--config", type=click.Path(exists=True, path_type=Path))
def validate_config_command(source_a: Optional[Path], source_b: Optional[Path], config: Optional[Path]):
    """
    Check a matching configuration, optionally against two files' headers.

    SOURCE_A, SOURCE_B: Optional CSV files whose headers the rules must reference
    """
    try:
        recon_config = load_config(config)
        headers_a = headers_b = None
        if source_a is not None and source_b is not None:
            data_a, data_b = _load_sources(recon_config, source_a, source_b)
            headers_a, headers_b = data_a.headers, data_b.headers
    except ReconciliationError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    issues = collect_config_issues(recon_config.matching, headers_a, headers_b)
    if not issues:
        console.print(
            f"[green]Configuration is valid ({len(recon_config.matching.rules)} rules)[/green]"
        )
        return

    table = Table(title="Configuration Issues")
    table.add_column("Rule", justify="right")
    table.add_column("Field", style="cyan")
    table.add_column("Problem")
    for issue in issues:
        table.add_row(
            "-" if issue.rule_index is None else str(issue.rule_index),
            issue.field or "-",
            issue.message,
        )
    console.print(table)
    sys.exit(1)


@main.command("suggest-normalizations")
@click.argument("source_a", type=click.Path(exists=True, path_type=Path))
@click.argument("source_b", type=click.Path(exists=True, path_type=Path))
@click.option("--column", required=True, help="Column whose values should be grouped")
@click.option("-c", "--config", type=click.Path(exists=True, path_type=Path))
@click.option("--threshold", type=float, default=None, help="Grouping similarity threshold")
def suggest_normalizations_command(
    source_a: Path, source_b: Path, column: str, config: Optional[Path], threshold: Optional[float]
):
    """
    Propose canonical forms for variants of the same value in a column.

    SOURCE_A: Path to the first CSV file
    SOURCE_B: Path to the second CSV file
    """
    try:
        recon_config = load_config(config)
        data_a, data_b = _load_sources(recon_config, source_a, source_b)
    except ReconciliationError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    settings = recon_config.normalization
    suggestions = suggest_for_sources(
        data_a,
        data_b,
        column,
        threshold if threshold is not None else settings.similarity_threshold,
        settings.abbreviations,
    )
    if not suggestions:
        console.print(f"No variant groups found in column {column!r}")
        return

    table = Table(title=f"Normalization Suggestions: {column}")
    table.add_column("Original")
    table.add_column("Canonical", style="green")
    table.add_column("Confidence")
    table.add_column("Similarity", justify="right")
    table.add_column("Rows", justify="right")
    for suggestion in suggestions:
        for mapping in suggestion.mappings:
            table.add_row(
                mapping.original,
                mapping.normalized,
                mapping.confidence.value,
                f"{mapping.similarity:.2f}",
                str(mapping.occurrences),
            )
    console.print(table)


@main.command("scan-quality")
@click.argument("source_a", type=click.Path(exists=True, path_type=Path))
@click.argument("source_b", type=click.Path(exists=True, path_type=Path))
@click.option("-c", "--config", type=click.Path(exists=True, path_type=Path))
def scan_quality(source_a: Path, source_b: Path, config: Optional[Path]):
    """
    Report data quality issues in two CSV files.

    SOURCE_A: Path to the first CSV file
    SOURCE_B: Path to the second CSV file
    """
    try:
        recon_config = load_config(config)
        data_a, data_b = _load_sources(recon_config, source_a, source_b)
    except ReconciliationError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    scan = scan_data_quality(data_a, data_b, recon_config.normalization.similarity_threshold)

    table = Table(title="Data Quality Issues")
    table.add_column("Source")
    table.add_column("Column", style="cyan")
    table.add_column("Issue")
    table.add_column("Severity")
    table.add_column("Rows", justify="right")
    table.add_column("Auto-fix")
    for label, issues in (("A", scan.source_a), ("B", scan.source_b)):
        for issue in issues:
            table.add_row(
                label,
                issue.column,
                issue.type.value,
                issue.severity,
                str(len(issue.affected_rows)),
                "yes" if issue.auto_fixable else "no",
            )
    console.print(table)
    console.print(f"\nTotal issues: {scan.total_issues}")
    if scan.needs_review:
        console.print("[yellow]Some issues need manual review before matching[/yellow]")


@main.command("init-config")
@click.option(
    "-o", "--output", type=click.Path(path_type=Path), default=Path("config.yaml")
)
def init_config(output: Path):
    """Generate a sample configuration file."""
    generate_default_config(output)
    console.print(f"[green]Configuration file generated: {output}[/green]")


def _display_summary(summary) -> None:
    """Display reconciliation summary in console."""
    table = Table(title="Reconciliation Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Total Source A Transactions", str(summary.total_a))
    table.add_row("Total Source B Transactions", str(summary.total_b))
    table.add_row("Matched", str(summary.matched_count))
    table.add_row("Unmatched in A", str(summary.unmatched_a_count))
    table.add_row("Unmatched in B", str(summary.unmatched_b_count))
    table.add_row("Amount Variances", str(summary.variance_count))
    table.add_row("Source A Match Rate", f"{summary.match_rate_a:.1f}%")
    table.add_row("Source B Match Rate", f"{summary.match_rate_b:.1f}%")
    table.add_row("Processing Time", f"{summary.processing_time_seconds:.2f}s")

    console.print(table)


def _display_explanations(result, hints, limit: int, recon_config: ReconConfig) -> None:
    """Explain the first unmatched records with the offline explainer."""
    service = RuleBasedExplanationService()
    unmatched = (list(result.unmatched_a) + list(result.unmatched_b))[:limit]

    table = Table(title="Unmatched Explanations")
    table.add_column("Record")
    table.add_column("Probable Cause")
    table.add_column("Recommended Action")
    for txn in unmatched:
        record = f"{txn.source.label} row {txn.row_index}"
        try:
            analysis = explain_unmatched(
                service,
                txn,
                result,
                timeout=recon_config.service.explanation_timeout_seconds,
                max_candidates=recon_config.service.max_explanation_candidates,
                hints=hints,
            )
        except CollaboratorTimeoutError:
            table.add_row(record, "[yellow]Timed out[/yellow]", "Retry later")
            continue
        except CollaboratorError as e:
            table.add_row(record, "[red]Failed[/red]", str(e))
            continue
        table.add_row(record, analysis.probable_cause, analysis.recommended_action)
    console.print(table)


if __name__ == "__main__":
    main()

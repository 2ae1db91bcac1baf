"""Run log file and console summary."""

from pathlib import Path

from rich.console import Console
from rich.table import Table

from gwas_harmonizer.config import Config
from gwas_harmonizer.models import RunSummary, VariantStatus


def write_log_file(config: Config, summary: RunSummary) -> Path:
    """Write the LOG file with the options used and run statistics.

    Args:
        config: Configuration used for the run
        summary: Statistics collected during the run

    Returns:
        Path to generated log file
    """
    log_path = config.log_dir / f"LOG-{config.trait_name}.txt"
    log_path.parent.mkdir(parents=True, exist_ok=True)

    with open(log_path, "w") as f:
        f.write("Options Set:\n")
        f.write(f"Trait:                       {config.trait_name}\n")
        f.write(f"Input filename:              {config.input_file}\n")
        f.write(f"Output filename:             {config.output_file}\n")
        f.write(f"dbSNP filename:              {config.dbsnp_file}\n")
        f.write(f"Reference FASTA:             {config.fasta_ref}\n")
        f.write(f"Build:                       {config.source_build} -> {config.target_build}\n")
        f.write(f"Effect is odds ratio:        {'Y' if config.effect_is_or else 'N'}\n")
        f.write(f"Liftover chunk size:         {config.liftover_chunk_size}\n")
        f.write(f"Lookup chunk size:           {config.lookup_chunk_size}\n")
        if config.verbose:
            f.write("Verbose logging flag set\n")
        f.write("\n\n")

        f.write("Parsing\n")
        f.write(f" Input rows {summary.input_rows}\n")
        f.write(f" Parsed records {summary.parsed}\n")
        f.write(f" Rows excluded {summary.parse_error_total}\n")
        for reason, count in sorted(summary.parse_errors.items()):
            f.write(f"  {reason} {count}\n")

        f.write("\nLiftover\n")
        if summary.liftover_short_circuit:
            f.write(" Source and target builds match; liftover skipped\n")
        f.write(f" Batches {summary.liftover_batches}\n")
        f.write(f" Batches failed {summary.liftover_batches_failed}\n")
        f.write(f" Multiple mappings {summary.liftover_multiple_mappings}\n")

        f.write("\nReference lookup\n")
        f.write(f" Batches {summary.lookup_batches}\n")
        f.write(f" Batches failed {summary.lookup_batches_failed}\n")
        f.write(f" Regions queried {summary.lookup_queries}\n")
        f.write(f" Missing reference {summary.missing_reference}\n")
        f.write(f" Strand flips {summary.strand_flips}\n")
        f.write(f" Allele swaps {summary.allele_swaps}\n")

        f.write("\ndbSNP\n")
        f.write(f" Lines scanned {summary.dbsnp_lines_scanned}\n")
        f.write(f" Malformed lines skipped {summary.dbsnp_malformed}\n")
        f.write(f" Ambiguous matches {summary.dbsnp_ambiguous}\n")

        f.write("\nOutput\n")
        f.write(f" Records written {summary.written}\n")
        for status in VariantStatus:
            f.write(f" {status.value} {summary.count(status)}\n")
        for detail, count in sorted(summary.detail_counts.items()):
            f.write(f"  {detail} {count}\n")

        if summary.failures:
            f.write("\nBatch failures\n")
            for failure in summary.failures:
                f.write(f" {failure}\n")

    return log_path


def print_summary(summary: RunSummary, console: Console | None = None) -> None:
    """Print the run summary as a table.

    Args:
        summary: Statistics collected during the run
        console: Rich console (a new one is created if None)
    """
    console = console or Console()

    table = Table(title="Harmonization summary", show_header=True, header_style="bold")
    table.add_column("Step")
    table.add_column("Count", justify="right")

    table.add_row("Input rows", f"{summary.input_rows:,}")
    table.add_row("Parsed", f"{summary.parsed:,}")
    table.add_row("Excluded while parsing", f"{summary.parse_error_total:,}")
    table.add_row("Strand flips", f"{summary.strand_flips:,}")
    table.add_row("Allele swaps", f"{summary.allele_swaps:,}")

    for status in VariantStatus:
        table.add_row(status.value, f"{summary.count(status):,}")

    if summary.liftover_batches_failed or summary.lookup_batches_failed:
        table.add_row(
            "[red]Failed batches[/red]",
            f"{summary.liftover_batches_failed + summary.lookup_batches_failed:,}",
        )
    if summary.dbsnp_malformed:
        table.add_row("[yellow]Malformed dbSNP lines[/yellow]", f"{summary.dbsnp_malformed:,}")

    console.print(table)

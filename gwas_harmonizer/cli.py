"""Typer CLI for the GWAS harmonizer.

Usage:
    # Column names resolved from the built-in alias table
    gwas-harmonizer -i raw.tsv.gz -o trait.tsv.gz --dbsnp dbsnp.tsv.gz \\
        --fasta hg38.fa --liftover-dir chains/

    # Column mapping, delimiter and build taken from the trait legend
    gwas-harmonizer --legend legend.tsv --trait T2D --raw-input-dir raw/ \\
        -o T2D.tsv.gz --dbsnp dbsnp.tsv.gz --fasta hg38.fa --liftover-dir chains/
"""

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from gwas_harmonizer import __version__
from gwas_harmonizer.exceptions import HarmonizerError
from gwas_harmonizer.parsers.columns import CANONICAL_FIELDS

app = typer.Typer(
    name="gwas-harmonizer",
    help="Harmonize GWAS summary statistics to a target genome build and annotate them with dbSNP",
    add_completion=False,
)

console = Console()


def parse_column_overrides(values: list[str]) -> dict[str, str]:
    """Parse ``field=column`` pairs given with --column.

    Raises:
        typer.BadParameter: If a pair is malformed or names an unknown field
    """
    mapping: dict[str, str] = {}
    for value in values:
        field_name, sep, column = value.partition("=")
        if not sep or not field_name or not column:
            raise typer.BadParameter(f"Expected FIELD=COLUMN, got '{value}'", param_hint="--column")
        if field_name not in CANONICAL_FIELDS:
            raise typer.BadParameter(
                f"Unknown field '{field_name}'. Valid fields: {', '.join(CANONICAL_FIELDS)}",
                param_hint="--column",
            )
        mapping[field_name] = column
    return mapping


@app.command()
def harmonize(
    output: Annotated[
        Path,
        typer.Option(
            "--output", "-o",
            help="Output path for the gzipped harmonized table",
            dir_okay=False,
        ),
    ],
    dbsnp: Annotated[
        Path,
        typer.Option(
            "--dbsnp",
            help="dbSNP reference table sorted by chromosome and position (may be gzipped)",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
        ),
    ],
    fasta: Annotated[
        Path,
        typer.Option(
            "--fasta",
            help="Target-build reference FASTA indexed with 'samtools faidx'",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
        ),
    ],
    input_file: Annotated[
        Path | None,
        typer.Option(
            "--input", "-i",
            help="Raw summary-statistics file (default: the legend's file_path)",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    legend: Annotated[
        Path | None,
        typer.Option(
            "--legend",
            help="Trait formatting legend (TSV/CSV export with a trait_name column)",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    trait: Annotated[
        str | None,
        typer.Option(
            "--trait", "-t",
            help="Trait name (selects the legend row; labels the log file)",
        ),
    ] = None,
    raw_input_dir: Annotated[
        Path,
        typer.Option(
            "--raw-input-dir",
            help="Directory the legend's file_path is relative to",
            file_okay=False,
            dir_okay=True,
        ),
    ] = Path("."),
    source_build: Annotated[
        str | None,
        typer.Option(
            "--source-build",
            help="Build of the input coordinates: hg17, hg18, hg19, hg38 (default: legend or hg19)",
        ),
    ] = None,
    target_build: Annotated[
        str,
        typer.Option(
            "--target-build",
            help="Build of the output coordinates",
        ),
    ] = "hg38",
    liftover_dir: Annotated[
        Path | None,
        typer.Option(
            "--liftover-dir",
            help="Directory holding UCSC chain files (e.g. hg19ToHg38.over.chain.gz)",
            file_okay=False,
            dir_okay=True,
        ),
    ] = None,
    chain: Annotated[
        list[Path] | None,
        typer.Option(
            "--chain",
            help="Explicit chain file; repeat to chain several hops (overrides --liftover-dir)",
        ),
    ] = None,
    liftover_path: Annotated[
        str | None,
        typer.Option(
            "--liftover",
            help="Path to liftOver executable (default: auto-detect from PATH)",
        ),
    ] = None,
    samtools_path: Annotated[
        str | None,
        typer.Option(
            "--samtools",
            help="Path to samtools executable (default: auto-detect from PATH)",
        ),
    ] = None,
    column: Annotated[
        list[str] | None,
        typer.Option(
            "--column", "-c",
            help="Column override as FIELD=COLUMN (e.g. effect_size=BETA); repeatable",
        ),
    ] = None,
    delimiter: Annotated[
        str | None,
        typer.Option(
            "--delimiter", "-d",
            help="Input delimiter: tab, comma, space, whitespace or a single character",
        ),
    ] = None,
    effect_is_or: Annotated[
        bool,
        typer.Option(
            "--effect-is-or",
            help="Effect column holds odds ratios (converted to log-odds); also set by the legend",
        ),
    ] = False,
    n_total: Annotated[
        float | None,
        typer.Option("--n-total", help="Constant total sample size", min=0),
    ] = None,
    n_case: Annotated[
        float | None,
        typer.Option("--n-case", help="Constant number of cases", min=0),
    ] = None,
    n_ctrl: Annotated[
        float | None,
        typer.Option("--n-ctrl", help="Constant number of controls", min=0),
    ] = None,
    af_column: Annotated[
        str,
        typer.Option(
            "--af-column",
            help="dbSNP column holding the population allele frequency",
        ),
    ] = "AF",
    extra_af: Annotated[
        list[str] | None,
        typer.Option(
            "--extra-af",
            help="Extra dbSNP frequency column copied to the output; repeatable",
        ),
    ] = None,
    liftover_chunk_size: Annotated[
        int,
        typer.Option("--liftover-chunk-size", help="Records per liftOver call", min=1),
    ] = 100_000,
    lookup_chunk_size: Annotated[
        int,
        typer.Option("--lookup-chunk-size", help="Regions per samtools faidx call", min=1),
    ] = 10_000,
    workers: Annotated[
        int | None,
        typer.Option(
            "--workers", "-j",
            help="Number of parallel batch workers (default: CPU based)",
            min=1,
        ),
    ] = None,
    tool_timeout: Annotated[
        int,
        typer.Option("--tool-timeout", help="Seconds before an external tool call is abandoned", min=1),
    ] = 3600,
    strict_liftover: Annotated[
        bool,
        typer.Option(
            "--strict-liftover",
            help="Fail the run if every liftover batch fails",
        ),
    ] = False,
    report_file: Annotated[
        Path | None,
        typer.Option(
            "--report-file",
            help="Path for JSON report file (default: {stem}-report.json)",
        ),
    ] = None,
    log_dir: Annotated[
        Path | None,
        typer.Option(
            "--log-dir",
            help="Directory for log files (default: output directory)",
            file_okay=False,
            dir_okay=True,
        ),
    ] = None,
    keep_temp: Annotated[
        bool,
        typer.Option("--keep-temp", help="Keep temporary batch files"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose logging"),
    ] = False,
) -> None:
    """Harmonize one trait's GWAS summary statistics.

    Lifts variants to the target build, orients alleles against the
    reference FASTA, annotates rsIDs and allele frequencies from dbSNP and
    writes one gzipped table in which every input row carries a status.

    Example usage:

        # hg19 input, explicit column names
        gwas-harmonizer -i raw.tsv -o out.tsv.gz --dbsnp dbsnp.tsv.gz --fasta hg38.fa \\
            --liftover-dir chains/ -c effect_size=BETA -c pvalue=P

        # Trait legend
        gwas-harmonizer --legend legend.tsv --trait T2D --raw-input-dir raw/ \\
            -o T2D.tsv.gz --dbsnp dbsnp.tsv.gz --fasta hg38.fa --liftover-dir chains/
    """
    import logging

    from gwas_harmonizer.config import Config
    from gwas_harmonizer.logging_config import setup_logging
    from gwas_harmonizer.main import run_harmonize
    from gwas_harmonizer.parsers.legend import load_trait_legend

    console.print("\n")
    console.print("[bold]GWAS Summary Statistics Harmonizer[/bold]", style="blue")
    console.print(f"Version {__version__}\n")

    if legend is not None and trait is None:
        console.print("[red]ERROR:[/red] --legend requires --trait")
        raise typer.Exit(code=1)
    if legend is None and input_file is None:
        console.print("[red]ERROR:[/red] Provide --input or --legend/--trait")
        raise typer.Exit(code=1)

    try:
        overrides = parse_column_overrides(column or [])
    except typer.BadParameter as e:
        console.print(f"[red]ERROR:[/red] {e}")
        raise typer.Exit(code=1)

    log_root = log_dir or output.parent
    debug_log = setup_logging(
        log_dir=log_root,
        job_name=trait or "harmonize",
        console_level=logging.INFO if verbose else logging.WARNING,
    )

    try:
        column_map: dict[str, str] = {}
        settings: dict = {
            "delimiter": "tab",
            "source_build": "hg19",
            "effect_is_or": False,
            "n_total": None,
            "n_case": None,
            "n_ctrl": None,
        }

        if legend is not None:
            trait_legend = load_trait_legend(legend, trait)
            column_map.update(trait_legend.column_map)
            settings.update(
                delimiter=trait_legend.delimiter,
                source_build=trait_legend.source_build,
                effect_is_or=trait_legend.effect_is_or,
                n_total=trait_legend.n_total,
                n_case=trait_legend.n_case,
                n_ctrl=trait_legend.n_ctrl,
            )
            if input_file is None:
                input_file = trait_legend.resolve_input(raw_input_dir)

        column_map.update(overrides)
        for name, value in (
            ("delimiter", delimiter),
            ("source_build", source_build),
            ("n_total", n_total),
            ("n_case", n_case),
            ("n_ctrl", n_ctrl),
        ):
            if value is not None:
                settings[name] = value
        if effect_is_or:
            settings["effect_is_or"] = True

        config = Config(
            input_file=input_file,
            output_file=output,
            dbsnp_file=dbsnp,
            fasta_ref=fasta,
            trait_name=trait or "trait",
            target_build=target_build,
            liftover_path=Path(liftover_path) if liftover_path else None,
            liftover_dir=liftover_dir,
            chain_files=list(chain or []),
            samtools_path=Path(samtools_path) if samtools_path else None,
            column_map=column_map,
            liftover_chunk_size=liftover_chunk_size,
            lookup_chunk_size=lookup_chunk_size,
            max_workers=workers,
            tool_timeout=tool_timeout,
            dbsnp_af_column=af_column,
            extra_af_columns=list(extra_af or []),
            abort_on_total_liftover_failure=strict_liftover,
            report_file=report_file,
            log_dir=log_dir,
            keep_temp_files=keep_temp,
            verbose=verbose,
            **settings,
        )

        console.print("Options Set:")
        console.print(f"Trait:                       {config.trait_name}")
        console.print(f"Input filename:              {config.input_file}")
        console.print(f"Output filename:             {config.output_file}")
        console.print(f"dbSNP filename:              {config.dbsnp_file}")
        console.print(f"Reference FASTA:             {config.fasta_ref}")
        console.print(f"Build:                       {config.source_build} -> {config.target_build}")
        if config.verbose:
            console.print("Verbose logging flag set")
            console.print(f"Debug log:                   {debug_log}")
        console.print("")

        errors = config.validate()
        if errors:
            for error in errors:
                console.print(f"[red]ERROR:[/red] {error}")
            raise typer.Exit(code=1)

        summary = run_harmonize(config, console)
    except HarmonizerError as e:
        console.print(f"[red]ERROR:[/red] {e}")
        raise typer.Exit(code=1)
    except FileNotFoundError as e:
        console.print(f"[red]ERROR:[/red] {e}")
        raise typer.Exit(code=1)

    if summary.written == 0 and summary.input_rows == 0:
        console.print("[yellow]Warning:[/yellow] Input contained no data rows; wrote header only")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()

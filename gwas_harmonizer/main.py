"""Main orchestration for the GWAS harmonizer.

Implements run_harmonize(), which coordinates all components: parsing the
raw file, lifting it to the target build, checking alleles against the
reference sequence, joining against dbSNP and writing the harmonized table,
the run log and the JSON report.
"""

import logging
import shutil
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from gwas_harmonizer.checks.harmonize import apply_join, harmonize_record, output_sort_key
from gwas_harmonizer.checks.orientation import orient_records
from gwas_harmonizer.config import Config
from gwas_harmonizer.exceptions import ConfigurationError
from gwas_harmonizer.faidx_runner import FastaIndex, ReferenceLookup, query_for
from gwas_harmonizer.liftover_runner import (
    LiftoverCoordinator,
    intermediate_hg19_hop,
    passthrough_records,
    resolve_chain_files,
)
from gwas_harmonizer.models import RunSummary, StatusDetail, SummaryStatRecord
from gwas_harmonizer.parsers.columns import ColumnMapping
from gwas_harmonizer.parsers.sumstats import SumstatsReader
from gwas_harmonizer.reference.dbsnp import DbSNPTable, merge_join
from gwas_harmonizer.writers.log import print_summary, write_log_file
from gwas_harmonizer.writers.output import HarmonizedFileWriter
from gwas_harmonizer.writers.report import ReportWriter

logger = logging.getLogger(__name__)

console = Console()


@contextmanager
def _progress(description: str, total: int | None, out: Console) -> Iterator[Callable[..., None]]:
    """Progress bar yielding an ``advance(n)`` callback."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=out,
        transient=True,
    ) as progress:
        task = progress.add_task(description, total=total)
        yield lambda n=1: progress.advance(task, n)


def run_harmonize(config: Config, out: Console | None = None) -> RunSummary:
    """Run the full harmonization pipeline for one trait.

    Main entry point that coordinates:
    1. Validating configuration, binaries and reference files
    2. Parsing the raw summary statistics
    3. Lifting records to the target build (batched, parallel)
    4. Checking allele orientation against the reference (batched, parallel)
    5. Joining against dbSNP in one sequential pass
    6. Writing the sorted, gzipped output table, log and JSON report

    Args:
        config: Configuration with file paths and options
        out: Rich console for progress (module console if None)

    Returns:
        RunSummary with the statistics of every step

    Raises:
        ConfigurationError: If configuration is invalid or no row can be parsed
        SchemaError: If the input or dbSNP header lacks a required column
        LiftoverBatchError: If every liftover batch fails and
            ``abort_on_total_liftover_failure`` is set
    """
    out = out or console

    # Step 1: Validate before any batch is dispatched
    errors = config.validate()
    if errors:
        raise ConfigurationError("Invalid configuration:\n  " + "\n  ".join(errors))

    summary = RunSummary()
    report_writer = ReportWriter(config)

    index = FastaIndex.load(config.fasta_ref)
    dbsnp = DbSNPTable(
        config.dbsnp_file,
        af_column=config.dbsnp_af_column,
        extra_af_columns=config.extra_af_columns,
    )

    # Step 2: Parse
    out.print(f"Reading {config.input_file.name}")
    reader = SumstatsReader(
        config.input_file,
        ColumnMapping(explicit=dict(config.column_map)),
        delimiter=config.delimiter,
        effect_is_or=config.effect_is_or,
        n_total=config.n_total,
        n_case=config.n_case,
        n_ctrl=config.n_ctrl,
        source_build=config.source_build,
        target_build=config.target_build,
    )
    with _progress("Parsing rows...", None, out) as advance:
        records = []
        for record in reader:
            records.append(record)
            advance()

    summary.input_rows = reader.rows_seen
    summary.parsed = len(records)
    summary.parse_errors.update(reader.errors)
    out.print(f"Parsed {summary.parsed:,} of {summary.input_rows:,} rows\n")

    if summary.input_rows and not records:
        raise ConfigurationError(
            f"None of the {summary.input_rows} data rows in {config.input_file} could be parsed "
            f"(reasons: {dict(reader.errors)}); check the column mapping and delimiter"
        )

    work_dir = config.output_file.parent / f".{config.file_stem}.work"
    work_dir.mkdir(parents=True, exist_ok=True)

    try:
        # Step 3: Liftover
        if not config.needs_liftover:
            summary.liftover_short_circuit = True
            records = passthrough_records(records)
            logger.info("Source and target build are both %s; liftover skipped", config.source_build)
        else:
            # An explicit chain list has no known waypoint build
            hg19_hop = None
            if not config.chain_files:
                hg19_hop = intermediate_hg19_hop(config.source_build, config.target_build)
            coordinator = LiftoverCoordinator(
                liftover_path=config.resolve_liftover(),
                chain_files=config.chain_files
                or resolve_chain_files(config.liftover_dir, config.source_build, config.target_build),
                chunk_size=config.liftover_chunk_size,
                max_workers=config.max_workers,
                timeout=config.tool_timeout,
                keep_temp_files=config.keep_temp_files,
                work_dir=work_dir,
                abort_on_total_failure=config.abort_on_total_liftover_failure,
                hg19_hop=hg19_hop,
            )
            out.print(f"Lifting {len(records):,} records {config.source_build} -> {config.target_build}")
            with _progress("Lifting over...", len(records), out) as advance:
                records = coordinator.run(records, summary, on_batch_done=advance)

        # Step 4: Reference lookup and orientation
        engine = ReferenceLookup(
            samtools_path=config.resolve_samtools(),
            index=index,
            chunk_size=config.lookup_chunk_size,
            max_workers=config.max_workers,
            timeout=config.tool_timeout,
            keep_temp_files=config.keep_temp_files,
            work_dir=work_dir,
        )
        queries = [q for q in map(query_for, records) if q is not None]
        out.print(f"Fetching reference bases for {len(set(queries)):,} regions")
        with _progress("Reading reference...", len(set(queries)), out) as advance:
            lookup = engine.fetch(queries, summary, on_batch_done=advance)
        records = orient_records(records, lookup, summary)
    finally:
        if not config.keep_temp_files:
            shutil.rmtree(work_dir, ignore_errors=True)

    # Step 5: dbSNP join
    out.print(f"Joining against {config.dbsnp_file.name}")
    joined: dict[int, SummaryStatRecord] = {}
    with _progress("Joining dbSNP...", None, out) as advance:
        for record, join in merge_join(records, dbsnp):
            if join.detail == StatusDetail.AMBIGUOUS_MATCH:
                summary.dbsnp_ambiguous += 1
            joined[record.row_id] = apply_join(record, join)
            advance()
    records = [joined.get(record.row_id, record) for record in records]

    summary.dbsnp_lines_scanned = dbsnp.lines_scanned
    summary.dbsnp_malformed = dbsnp.malformed

    # Step 6: Harmonize, sort and write
    rows = sorted(map(harmonize_record, records), key=output_sort_key)

    with HarmonizedFileWriter(config.output_file, config.extra_af_columns) as writer:
        for row in rows:
            writer.write(row)
            summary.status_counts[row.status.value] += 1
            if row.status_detail:
                summary.detail_counts[row.status_detail] += 1
    summary.written = writer.written

    log_path = write_log_file(config, summary)
    report_writer.write(config.report_file, summary, [config.output_file])

    print_summary(summary, out)

    out.print("\n[bold]Output files generated:[/bold]")
    out.print(f"  Harmonized table:   {config.output_file}")
    out.print(f"  Log file:           {log_path}")
    out.print(f"  Report file:        {config.report_file}")
    if summary.failures:
        out.print(f"\n[yellow]Warning:[/yellow] {len(summary.failures)} batch(es) failed; see the log file")

    out.print("\n[green]Harmonization complete![/green]\n")

    return summary

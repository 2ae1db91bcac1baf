"""JSON report writer for a harmonization run.

Creates a JSON report containing run metadata, the statistics of every
pipeline step and the batch-level failures, for audit and reproducibility.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from gwas_harmonizer import __version__
from gwas_harmonizer.config import Config
from gwas_harmonizer.io_utils import atomic_write_path
from gwas_harmonizer.models import RunSummary, VariantStatus


@dataclass
class RunReport:
    """Complete run report for JSON output.

    Attributes:
        metadata: Version, timestamp, input files, options
        statistics: Counts from RunSummary
        failures: Batch-level failure messages
        output_files: Output file paths
    """

    metadata: dict
    statistics: dict
    failures: list[str]
    output_files: list[str]


class ReportWriter:
    """Writes the JSON run report.

    Usage:
        writer = ReportWriter(config)
        ...run the pipeline...
        writer.write(config.report_file, summary, [config.output_file])
    """

    def __init__(self, config: Config) -> None:
        self.config = config
        self.start_time = datetime.now()

    def build(self, summary: RunSummary, output_files: list[Path]) -> RunReport:
        """Assemble the report contents."""
        end_time = datetime.now()
        duration = (end_time - self.start_time).total_seconds()

        metadata = {
            "version": __version__,
            "tool": "gwas-harmonizer",
            "timestamp": end_time.isoformat(),
            "duration_seconds": duration,
            "trait": self.config.trait_name,
            "input_files": {
                "input_file": str(self.config.input_file),
                "dbsnp_file": str(self.config.dbsnp_file),
                "fasta_ref": str(self.config.fasta_ref),
            },
            "builds": {
                "source": self.config.source_build,
                "target": self.config.target_build,
            },
            "options": {
                "effect_is_or": self.config.effect_is_or,
                "liftover_chunk_size": self.config.liftover_chunk_size,
                "lookup_chunk_size": self.config.lookup_chunk_size,
                "max_workers": self.config.max_workers,
                "extra_af_columns": list(self.config.extra_af_columns),
            },
        }

        statistics = {
            "parsing": {
                "input_rows": summary.input_rows,
                "parsed": summary.parsed,
                "excluded": dict(summary.parse_errors),
            },
            "liftover": {
                "skipped": summary.liftover_short_circuit,
                "batches": summary.liftover_batches,
                "batches_failed": summary.liftover_batches_failed,
                "multiple_mappings": summary.liftover_multiple_mappings,
            },
            "reference_lookup": {
                "batches": summary.lookup_batches,
                "batches_failed": summary.lookup_batches_failed,
                "queries": summary.lookup_queries,
                "missing_reference": summary.missing_reference,
                "strand_flips": summary.strand_flips,
                "allele_swaps": summary.allele_swaps,
            },
            "dbsnp": {
                "lines_scanned": summary.dbsnp_lines_scanned,
                "malformed_lines": summary.dbsnp_malformed,
                "ambiguous_matches": summary.dbsnp_ambiguous,
            },
            "output": {
                "written": summary.written,
                "status": {status.value: summary.count(status) for status in VariantStatus},
                "status_detail": dict(sorted(summary.detail_counts.items())),
            },
        }

        return RunReport(
            metadata=metadata,
            statistics=statistics,
            failures=list(summary.failures),
            output_files=[str(f) for f in output_files],
        )

    def write(self, output_path: Path, summary: RunSummary, output_files: list[Path]) -> None:
        """Write complete JSON report atomically.

        Writes to a temporary file first, then renames to prevent
        partial files on interruption.
        """
        report = self.build(summary, output_files)
        report_dict = {
            "metadata": report.metadata,
            "statistics": report.statistics,
            "failures": report.failures,
            "output_files": report.output_files,
        }

        with atomic_write_path(output_path, suffix=".json.tmp") as tmp_path:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(report_dict, f, indent=2)

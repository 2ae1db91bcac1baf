"""Harmonized summary-statistics table writer.

Output is a gzip-compressed TSV with a fixed column order. The gzip header
carries no file name and a zero timestamp, so identical inputs produce
byte-identical files. Rows are written to a temporary file next to the
destination, which is renamed into place only once the writer closes
cleanly.

Columns:
rsid  unique_id  chromosome  position  source_chromosome  source_position
hg19_chromosome  hg19_position  ref  alt  effect_size  standard_error  eaf
pvalue  pvalue_het  n_total  n_case  n_ctrl  allele_frequency
[extra frequency columns]  status  status_detail
"""

import gzip
import io
from contextlib import ExitStack
from pathlib import Path
from types import TracebackType
from typing import TextIO

from gwas_harmonizer.io_utils import atomic_write_path
from gwas_harmonizer.models import HarmonizedRecord
from gwas_harmonizer.utils import format_value

LEADING_COLUMNS: tuple[str, ...] = (
    "rsid",
    "unique_id",
    "chromosome",
    "position",
    "source_chromosome",
    "source_position",
    "hg19_chromosome",
    "hg19_position",
    "ref",
    "alt",
    "effect_size",
    "standard_error",
    "eaf",
    "pvalue",
    "pvalue_het",
    "n_total",
    "n_case",
    "n_ctrl",
    "allele_frequency",
)

TRAILING_COLUMNS: tuple[str, ...] = ("status", "status_detail")


def output_columns(extra_af_columns: list[str] | tuple[str, ...] = ()) -> list[str]:
    """Full output header for the configured extra frequency columns."""
    return [*LEADING_COLUMNS, *extra_af_columns, *TRAILING_COLUMNS]


def format_row(record: HarmonizedRecord, extra_af_columns: list[str] | tuple[str, ...] = ()) -> list[str]:
    """Format one output row.

    Missing values are written as "NA", except ``rsid`` which is left
    empty when no rsID was resolved.
    """
    extras = dict(record.population_frequencies)
    return [
        record.rsid or "",
        record.unique_id,
        record.chromosome,
        format_value(record.position),
        record.source_chromosome,
        format_value(record.source_position),
        format_value(record.hg19_chromosome),
        format_value(record.hg19_position),
        record.ref,
        record.alt,
        format_value(record.effect_size),
        format_value(record.standard_error),
        format_value(record.eaf),
        format_value(record.pvalue),
        format_value(record.pvalue_het),
        format_value(record.n_total),
        format_value(record.n_case),
        format_value(record.n_ctrl),
        format_value(record.allele_frequency),
        *(format_value(extras.get(name)) for name in extra_af_columns),
        record.status.value,
        format_value(record.status_detail),
    ]


class HarmonizedFileWriter:
    """Single writer for the harmonized output table.

    Usage:
        with HarmonizedFileWriter(output_path, ["gnomAD_AF_EUR"]) as writer:
            for record in records:
                writer.write(record)

    The header is written on entry. If the block raises, the partial file
    is discarded and any existing output is left untouched.
    """

    def __init__(self, output_path: Path, extra_af_columns: list[str] | None = None) -> None:
        """Initialize writer.

        Args:
            output_path: Destination .tsv.gz path
            extra_af_columns: Extra frequency columns, in output order
        """
        self.output_path = output_path
        self.extra_af_columns = list(extra_af_columns or [])
        self.written = 0
        self._stack: ExitStack | None = None
        self._handle: TextIO | None = None

    def __enter__(self) -> "HarmonizedFileWriter":
        stack = ExitStack()
        try:
            tmp_path = stack.enter_context(atomic_write_path(self.output_path, suffix=".tsv.gz.tmp"))
            raw = stack.enter_context(open(tmp_path, "wb"))
            compressed = stack.enter_context(
                gzip.GzipFile(filename="", mode="wb", fileobj=raw, mtime=0)
            )
            self._handle = stack.enter_context(
                io.TextIOWrapper(compressed, encoding="utf-8", newline="\n")
            )
            self._handle.write("\t".join(output_columns(self.extra_af_columns)) + "\n")
        except BaseException:
            stack.close()
            raise
        self._stack = stack
        return self

    def write(self, record: HarmonizedRecord) -> None:
        """Write one output row."""
        if self._handle is None:
            raise RuntimeError("HarmonizedFileWriter used outside of a with block")
        self._handle.write("\t".join(format_row(record, self.extra_af_columns)) + "\n")
        self.written += 1

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool:
        stack, self._stack, self._handle = self._stack, None, None
        if stack is not None:
            return bool(stack.__exit__(exc_type, exc_val, exc_tb))
        return False

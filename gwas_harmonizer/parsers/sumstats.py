"""Raw GWAS summary-statistics parser.

Streams a delimited (optionally gzipped) file into ``SummaryStatRecord``
values. Header problems are fatal (``SchemaError``); row problems are not:
the row is excluded and counted by reason.

Row clean-up applied while parsing:
a) chromosome normalized to "chrN" (23/24/25 -> X/Y/M)
b) alleles upper-cased
c) rows with I/D style alleles removed
d) rows with non-finite effect estimates removed
e) odds ratios converted to log-odds when the trait says so
f) sample sizes tabulated from constants and case/control counts
"""

import logging
import math
from collections import Counter
from collections.abc import Iterator
from pathlib import Path

from gwas_harmonizer.exceptions import ConfigurationError, ParseError, SchemaError
from gwas_harmonizer.io_utils import smart_open
from gwas_harmonizer.models import SummaryStatRecord
from gwas_harmonizer.parsers.columns import ColumnMapping
from gwas_harmonizer.utils import (
    is_indel_marker,
    is_null,
    normalize_chromosome,
    parse_optional_float,
)

logger = logging.getLogger(__name__)

DELIMITERS: dict[str, str | None] = {
    "tab": "\t",
    "\\t": "\t",
    "\t": "\t",
    "comma": ",",
    ",": ",",
    "space": None,
    "whitespace": None,
    " ": None,
}

VALID_BASES = frozenset("ACGTN")

# Header lines of fewer columns almost always mean a wrong delimiter
MIN_COLUMNS = 5


def resolve_delimiter(delimiter: str) -> str | None:
    """Translate a delimiter name to the string passed to ``str.split``.

    Returns:
        The separator, or None to split on any run of whitespace

    Raises:
        ConfigurationError: If the name is unknown and not a single character

    Example:
        >>> resolve_delimiter("comma")
        ","
    """
    if delimiter in DELIMITERS:
        return DELIMITERS[delimiter]
    if delimiter.lower() in DELIMITERS:
        return DELIMITERS[delimiter.lower()]
    if len(delimiter) == 1:
        return delimiter
    raise ConfigurationError(f"Invalid column delimiter {delimiter!r}")


def tabulate_sample_sizes(
    n_total: float | None,
    n_case: float | None,
    n_ctrl: float | None,
) -> tuple[float | None, float | None, float | None]:
    """Fill in whichever sample size can be derived from the other two.

    Example:
        >>> tabulate_sample_sizes(None, 2000.0, 3000.0)
        (5000.0, 2000.0, 3000.0)
    """
    if n_case is not None and n_ctrl is not None:
        n_total = n_case + n_ctrl
    if n_ctrl is not None and n_total is not None and n_case is None:
        n_case = n_total - n_ctrl
    if n_case is not None and n_total is not None and n_ctrl is None:
        n_ctrl = n_total - n_case
    return n_total, n_case, n_ctrl


class SumstatsReader:
    """Streaming reader for one raw summary-statistics file.

    Usage:
        reader = SumstatsReader(path, ColumnMapping(), delimiter="tab")
        for record in reader:
            ...
        reader.errors  # Counter of excluded rows by reason

    The header is read (and validated) on construction.
    """

    def __init__(
        self,
        filepath: Path,
        mapping: ColumnMapping | None = None,
        delimiter: str = "tab",
        effect_is_or: bool = False,
        n_total: float | None = None,
        n_case: float | None = None,
        n_ctrl: float | None = None,
        source_build: str = "hg19",
        target_build: str = "hg38",
    ) -> None:
        """Open the file and resolve its header.

        Raises:
            FileNotFoundError: If the file doesn't exist
            SchemaError: If the header is empty, too narrow, or lacks a
                required column
        """
        if not filepath.exists():
            raise FileNotFoundError(f"Summary statistics file not found: {filepath}")

        self.filepath = filepath
        self.mapping = mapping or ColumnMapping()
        self.separator = resolve_delimiter(delimiter)
        self.effect_is_or = effect_is_or
        self.constants = {"n_total": n_total, "n_case": n_case, "n_ctrl": n_ctrl}
        self.source_build = source_build
        self.target_build = target_build

        self.rows_seen = 0
        self.errors: Counter = Counter()
        self._all_positive = True
        self._any_negative = False

        self.header = self._read_header()
        if len(self.header) < MIN_COLUMNS:
            raise SchemaError(
                f"Raw input file has fewer than {MIN_COLUMNS} columns "
                f"({len(self.header)}); the column delimiter is likely misspecified"
            )
        self.columns = self.mapping.resolve(self.header)

    def _split(self, line: str) -> list[str]:
        return [field.strip().strip('"') for field in line.split(self.separator)]

    def _read_header(self) -> list[str]:
        with smart_open(self.filepath) as f:
            for line in f:
                line = line.rstrip("\r\n")
                if line.strip():
                    return self._split(line)
        raise SchemaError(f"Summary statistics file is empty: {self.filepath}")

    def __iter__(self) -> Iterator[SummaryStatRecord]:
        """Yield one record per parsable data row."""
        width = len(self.header)
        header_skipped = False

        with smart_open(self.filepath) as f:
            for line_num, line in enumerate(f, 1):
                line = line.rstrip("\r\n")
                if not line.strip():
                    continue
                if not header_skipped:
                    header_skipped = True
                    continue

                self.rows_seen += 1
                try:
                    yield self._parse_row(self._split(line), width, line_num, self.rows_seen)
                except ParseError as e:
                    self.errors[e.reason] += 1
                    logger.debug("Excluded line %d: %s", line_num, e)

        self._warn_effect_direction()

    def _parse_row(
        self,
        fields: list[str],
        width: int,
        line_num: int,
        row_id: int,
    ) -> SummaryStatRecord:
        """Parse one split row.

        Raises:
            ParseError: If the row must be excluded
        """
        if len(fields) != width:
            raise ParseError(
                "field-count",
                f"expected {width} fields, got {len(fields)}",
                line_num,
            )

        cols = self.columns

        chr_raw = fields[cols["chromosome"]]
        if is_null(chr_raw):
            raise ParseError("missing-chromosome", "chromosome is missing", line_num)
        chromosome = normalize_chromosome(chr_raw)

        position = self._parse_position(fields[cols["position"]], line_num)

        ref = fields[cols["ref"]].upper()
        alt = fields[cols["alt"]].upper()
        for allele in (ref, alt):
            if is_null(allele):
                raise ParseError("missing-allele", "allele is missing", line_num)
            if is_indel_marker(allele):
                raise ParseError("ambiguous-allele", f"ambiguous allele code {allele!r}", line_num)
            if not set(allele) <= VALID_BASES:
                raise ParseError("invalid-allele", f"invalid allele {allele!r}", line_num)

        effect_size = self._parse_effect(fields[cols["effect_size"]], line_num)

        values: dict[str, float | None] = {}
        for name in ("standard_error", "pvalue", "eaf", "pvalue_het", "n_total", "n_case", "n_ctrl"):
            idx = cols.get(name)
            if idx is None:
                values[name] = self.constants.get(name)
                continue
            try:
                value = parse_optional_float(fields[idx])
            except ValueError:
                raise ParseError("invalid-numeric", f"{name} is not numeric: {fields[idx]!r}", line_num)
            if value is None:
                value = self.constants.get(name)
            values[name] = value

        n_total, n_case, n_ctrl = tabulate_sample_sizes(
            values["n_total"], values["n_case"], values["n_ctrl"]
        )

        return SummaryStatRecord(
            row_id=row_id,
            chromosome=chromosome,
            position=position,
            ref=ref,
            alt=alt,
            effect_size=effect_size,
            standard_error=values["standard_error"],
            pvalue=values["pvalue"],
            eaf=values["eaf"],
            pvalue_het=values["pvalue_het"],
            n_total=n_total,
            n_case=n_case,
            n_ctrl=n_ctrl,
            source_build=self.source_build,
            target_build=self.target_build,
        )

    @staticmethod
    def _parse_position(value: str, line_num: int) -> int:
        try:
            position = int(value)
        except ValueError:
            try:
                as_float = float(value)
            except ValueError:
                raise ParseError("invalid-position", f"position is not numeric: {value!r}", line_num)
            if not math.isfinite(as_float) or not as_float.is_integer():
                raise ParseError("invalid-position", f"position is not an integer: {value!r}", line_num)
            position = int(as_float)
        if position <= 0:
            raise ParseError("invalid-position", f"position must be positive: {position}", line_num)
        return position

    def _parse_effect(self, value: str, line_num: int) -> float:
        try:
            effect = float(value)
        except ValueError:
            raise ParseError("invalid-effect-size", f"effect size is not numeric: {value!r}", line_num)
        if not math.isfinite(effect):
            raise ParseError("invalid-effect-size", f"effect size is not finite: {value!r}", line_num)

        if effect <= 0:
            self._all_positive = False
        if effect < 0:
            self._any_negative = True

        if self.effect_is_or:
            if effect <= 0:
                raise ParseError("invalid-odds-ratio", f"odds ratio must be positive: {effect}", line_num)
            effect = math.log(effect)
        return effect

    def _warn_effect_direction(self) -> None:
        if self.rows_seen == self.error_total:
            return
        if not self.effect_is_or and self._all_positive:
            logger.warning(
                "All effect sizes are positive yet effect_is_OR has been set to N. Please double "
                "check that effect estimates from the raw data file are indeed regression "
                "coefficients and not odds ratios"
            )
        if self.effect_is_or and self._any_negative:
            logger.warning(
                "Some effect sizes are negative yet effect_is_OR has been set to Y. Please double "
                "check that effect estimates from the raw data file are indeed odds or hazard "
                "ratios and not regression coefficients"
            )

    @property
    def error_total(self) -> int:
        """Rows excluded so far."""
        return sum(self.errors.values())


def parse_sumstats(
    filepath: Path,
    mapping: ColumnMapping | None = None,
    **options,
) -> tuple[list[SummaryStatRecord], SumstatsReader]:
    """Parse a whole file into memory.

    Args:
        filepath: Raw summary-statistics file
        mapping: Column mapping (defaults to alias matching only)
        **options: Passed to ``SumstatsReader``

    Returns:
        (records, reader); the reader carries row and error counts

    Raises:
        SchemaError: If the header cannot be resolved
    """
    reader = SumstatsReader(filepath, mapping, **options)
    records = list(reader)
    logger.info(
        "Parsed %d of %d rows from %s (%d excluded)",
        len(records),
        reader.rows_seen,
        filepath.name,
        reader.error_total,
    )
    return records, reader

"""dbSNP reference table reader and sorted merge join.

The dbSNP-derived table is far too large to hold in memory, so it is
streamed once in file order. It must be sorted by position within each
chromosome and each chromosome's lines must be contiguous; chromosome order
itself is free.

File format (tab-separated, may be gzipped, header required):
chr   pos    ref  alt  rsid        AF
1     10177  A    AC   rs367896724 0.425
1     10352  T    TA   rs555500075 0.437

Column names are matched case-insensitively against an alias table.
Comma-separated ``alt`` values (multi-allelic sites) are expanded into one
entry per alternate allele, taking the matching element of list-valued
frequency columns.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable, Iterator
from itertools import groupby
from operator import attrgetter
from pathlib import Path

from gwas_harmonizer.exceptions import ReferenceTableError, SchemaError
from gwas_harmonizer.io_utils import smart_open
from gwas_harmonizer.models import DbSNPEntry, JoinResult, StatusDetail, SummaryStatRecord
from gwas_harmonizer.utils import chromosome_sort_key, is_null, normalize_chromosome, parse_optional_float

logger = logging.getLogger(__name__)

DBSNP_ALIASES: dict[str, tuple[str, ...]] = {
    "chromosome": ("chr", "#chrom", "chrom", "#chr", "chromosome", "chr_hg38"),
    "pos": ("pos", "pos_hg38", "position", "bp"),
    "ref": ("ref",),
    "alt": ("alt",),
    "rsid": ("rsid", "id", "rs", "snp"),
}


def _split_values(value: str, count: int) -> list[float | None]:
    """Per-allele values of a frequency field.

    A list with one element per alternate allele is used element-wise; a
    scalar applies only to a single alternate allele.
    """
    parts = value.split(",")
    if len(parts) == count:
        return [parse_optional_float(p) for p in parts]
    if count == 1:
        return [parse_optional_float(value)]
    return [None] * count


class DbSNPTable:
    """Streaming reader for a position-sorted dbSNP table.

    Iterating yields ``DbSNPEntry`` values in file order. Malformed lines
    and lines that break the sort order are skipped and counted. The counts
    cover the lines scanned so far, which is the whole file only when
    iteration runs to the end.

    Usage:
        table = DbSNPTable(path, af_column="AF")
        for entry in table:
            ...
        table.lines_scanned, table.malformed
    """

    def __init__(
        self,
        filepath: Path,
        af_column: str = "AF",
        extra_af_columns: Iterable[str] = (),
        aliases: dict[str, tuple[str, ...]] | None = None,
    ) -> None:
        """Open the table and resolve its header.

        Raises:
            FileNotFoundError: If the file doesn't exist
            SchemaError: If a required or configured column is missing
        """
        if not filepath.exists():
            raise FileNotFoundError(f"dbSNP file not found: {filepath}")

        self.filepath = filepath
        self.af_column = af_column
        self.extra_af_columns = list(extra_af_columns)
        self.aliases = aliases or DBSNP_ALIASES

        self.lines_scanned = 0
        self.malformed = 0

        self.header = self._read_header()
        self.width = len(self.header)
        self.columns = self._resolve_columns()

    def _read_header(self) -> list[str]:
        with smart_open(self.filepath) as f:
            line = f.readline()
        if not line.strip():
            raise SchemaError(f"dbSNP file has no header: {self.filepath}")
        return line.rstrip("\r\n").split("\t")

    def _resolve_columns(self) -> dict[str, int]:
        lookup: dict[str, int] = {}
        for idx, name in enumerate(self.header):
            lookup.setdefault(name.strip().lower(), idx)

        columns: dict[str, int] = {}
        for name, aliases in self.aliases.items():
            for alias in aliases:
                if alias in lookup:
                    columns[name] = lookup[alias]
                    break

        for name in [self.af_column, *self.extra_af_columns]:
            if name.lower() in lookup:
                columns[name] = lookup[name.lower()]

        missing = [
            name
            for name in [*self.aliases, self.af_column, *self.extra_af_columns]
            if name not in columns
        ]
        if missing:
            raise SchemaError(
                f"dbSNP file {self.filepath.name} is missing columns: {missing}. Found: {self.header}"
            )
        return columns

    def parse_line(self, line: str, line_num: int) -> list[DbSNPEntry]:
        """Parse one data line into entries (one per alternate allele).

        Raises:
            ReferenceTableError: If the line is malformed
        """
        fields = line.split("\t")
        if len(fields) != self.width:
            raise ReferenceTableError(line_num, f"expected {self.width} fields, got {len(fields)}")

        cols = self.columns
        chromosome = fields[cols["chromosome"]].strip()
        if is_null(chromosome):
            raise ReferenceTableError(line_num, "chromosome is missing")

        try:
            pos = int(fields[cols["pos"]])
        except ValueError:
            raise ReferenceTableError(line_num, f"invalid position {fields[cols['pos']]!r}")
        if pos <= 0:
            raise ReferenceTableError(line_num, f"invalid position {pos}")

        ref = fields[cols["ref"]].strip().upper()
        alts = [a.strip().upper() for a in fields[cols["alt"]].split(",")]
        rsid = fields[cols["rsid"]].strip()
        if is_null(ref) or any(is_null(a) for a in alts):
            raise ReferenceTableError(line_num, "empty allele")
        if is_null(rsid):
            raise ReferenceTableError(line_num, "rsid is missing")

        try:
            afs = _split_values(fields[cols[self.af_column]], len(alts))
            extras = [
                (name, _split_values(fields[cols[name]], len(alts)))
                for name in self.extra_af_columns
            ]
        except ValueError as e:
            raise ReferenceTableError(line_num, f"invalid frequency: {e}")

        chromosome = normalize_chromosome(chromosome)
        return [
            DbSNPEntry(
                chromosome=chromosome,
                pos=pos,
                ref=ref,
                alt=alt,
                rsid=rsid,
                allele_frequency=afs[i],
                population_frequencies=tuple((name, values[i]) for name, values in extras),
            )
            for i, alt in enumerate(alts)
        ]

    def __iter__(self) -> Iterator[DbSNPEntry]:
        """Yield entries in file order, skipping bad and out-of-order lines."""
        seen: set[str] = set()
        current_chrom: str | None = None
        last_pos = 0

        try:
            with smart_open(self.filepath) as f:
                f.readline()  # header
                for line_num, line in enumerate(f, 2):
                    line = line.rstrip("\r\n")
                    if not line.strip():
                        continue
                    self.lines_scanned += 1

                    try:
                        entries = self.parse_line(line, line_num)
                        chrom, pos = entries[0].chromosome, entries[0].pos
                        if chrom != current_chrom:
                            if chrom in seen:
                                raise ReferenceTableError(
                                    line_num, f"{chrom} lines are not contiguous"
                                )
                            seen.add(chrom)
                            current_chrom = chrom
                            last_pos = 0
                        if pos < last_pos:
                            raise ReferenceTableError(
                                line_num, f"position {pos} follows {last_pos} on {chrom}"
                            )
                    except ReferenceTableError as e:
                        self.malformed += 1
                        logger.debug("Skipping %s", e)
                        continue

                    last_pos = pos
                    yield from entries
        finally:
            if self.malformed:
                logger.warning(
                    "Skipped %d malformed or out-of-order lines in %s",
                    self.malformed,
                    self.filepath.name,
                )


def _mirror(value: float | None) -> float | None:
    return None if value is None else 1 - value


def match_entries(record: SummaryStatRecord, entries: list[DbSNPEntry]) -> JoinResult:
    """Match a record against the dbSNP entries at its position.

    The allele pair may match in either order; a reversed match converts
    the frequencies to the record's alt allele.

    Example:
        >>> match_entries(record_ag, [DbSNPEntry("chr1", 100, "G", "A", "rs1", 0.3)])
        JoinResult(rsid='rs1', allele_frequency=0.7, ..., reversed=True)
    """
    matches: list[tuple[DbSNPEntry, bool]] = []
    for entry in entries:
        if entry.ref == record.ref and entry.alt == record.alt:
            matches.append((entry, False))
        elif entry.ref == record.alt and entry.alt == record.ref:
            matches.append((entry, True))

    if not matches:
        return JoinResult(detail=StatusDetail.NOT_IN_DBSNP)
    if len(matches) > 1:
        return JoinResult(detail=StatusDetail.AMBIGUOUS_MATCH)

    entry, reversed_ = matches[0]
    if not reversed_:
        return JoinResult(
            rsid=entry.rsid,
            allele_frequency=entry.allele_frequency,
            population_frequencies=entry.population_frequencies,
        )
    return JoinResult(
        rsid=entry.rsid,
        allele_frequency=_mirror(entry.allele_frequency),
        population_frequencies=tuple(
            (name, _mirror(value)) for name, value in entry.population_frequencies
        ),
        reversed=True,
    )


def merge_join(
    records: Iterable[SummaryStatRecord],
    table: Iterable[DbSNPEntry],
) -> Iterator[tuple[SummaryStatRecord, JoinResult]]:
    """Join lifted records against the dbSNP table in one sequential pass.

    Records are grouped per chromosome and sorted by lifted position; the
    table is walked in file order in lockstep with them, holding only the
    entries of the current position. Records without lifted coordinates
    are ignored.

    Yields:
        (record, JoinResult) for every lifted record, in join order
    """
    by_chrom: dict[str, list[SummaryStatRecord]] = defaultdict(list)
    for record in records:
        if record.is_lifted:
            by_chrom[record.lifted_chromosome].append(record)
    for chrom_records in by_chrom.values():
        chrom_records.sort(key=lambda r: (r.lifted_position, r.row_id))

    not_found = JoinResult(detail=StatusDetail.NOT_IN_DBSNP)

    # The scan stops once every chromosome is joined, so the table's line
    # counts then cover only the lines scanned
    stream = iter(table)
    try:
        for chrom, chrom_entries in groupby(stream, key=attrgetter("chromosome")):
            if not by_chrom:
                break
            chrom_records = by_chrom.pop(chrom, None)
            if not chrom_records:
                continue

            i = 0
            for pos, pos_entries in groupby(chrom_entries, key=attrgetter("pos")):
                while i < len(chrom_records) and chrom_records[i].lifted_position < pos:
                    yield chrom_records[i], not_found
                    i += 1
                if i == len(chrom_records):
                    break

                entries = list(pos_entries)
                while i < len(chrom_records) and chrom_records[i].lifted_position == pos:
                    yield chrom_records[i], match_entries(chrom_records[i], entries)
                    i += 1

            for record in chrom_records[i:]:
                yield record, not_found
    finally:
        close = getattr(stream, "close", None)
        if close is not None:
            close()

    # Chromosomes the table never reached
    for chrom in sorted(by_chrom, key=chromosome_sort_key):
        for record in by_chrom[chrom]:
            yield record, not_found

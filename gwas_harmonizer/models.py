"""Data models for the GWAS harmonizer.

Records are frozen: every pipeline stage returns new record values with
``dataclasses.replace`` instead of mutating a shared store, and the per-record
outcome travels with the record as a ``VariantStatus`` plus a detail string.
"""

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum, auto


class VariantStatus(Enum):
    """Final harmonization outcome of a record."""

    RESOLVED = "resolved"
    UNMAPPED_LIFTOVER = "unmapped-liftover"
    ALLELE_MISMATCH = "allele-mismatch"
    NOVEL_VARIANT = "novel-variant"


class OrientationAction(Enum):
    """Action applied to a record's alleles by the reference check."""

    NONE = auto()
    FLIP = auto()  # complementary strand, effect sign kept
    SWAP = auto()  # ref/alt exchanged, effect sign negated
    FLIP_SWAP = auto()


class StatusDetail:
    """Sub-status strings written to the ``status_detail`` column."""

    STRAND_FLIP = "strand-flip"
    ALLELE_SWAP = "allele-swap"
    STRAND_FLIP_ALLELE_SWAP = "strand-flip+allele-swap"
    LIFTOVER_UNMAPPED = "liftover-unmapped"
    MULTIPLE_MAPPINGS = "multiple-mappings"
    LIFTOVER_DROPPED = "liftover-dropped"
    LIFTOVER_BATCH_FAILED = "liftover-batch-failed"
    MISSING_REFERENCE = "missing-reference"
    LOOKUP_BATCH_FAILED = "lookup-batch-failed"
    NO_ALLELE_MATCH = "no-allele-match"
    AMBIGUOUS_MATCH = "ambiguous-match"
    NOT_IN_DBSNP = "not-in-dbsnp"


@dataclass(frozen=True, slots=True)
class SummaryStatRecord:
    """One GWAS variant row moving through the pipeline.

    Attributes:
        row_id: 1-based data-row number, used to correlate tool output
        chromosome: Source-build chromosome ("chr1", "chrX", ...)
        position: Source-build 1-based position
        ref: Reference (other) allele
        alt: Alternate (effect) allele
        effect_size: Effect estimate on the log scale
        standard_error: Standard error of the effect
        pvalue: Association p-value
        eaf: Effect (alt) allele frequency reported by the study
        pvalue_het: Heterogeneity p-value
        n_total: Total sample size
        n_case: Number of cases
        n_ctrl: Number of controls
        source_build: Build of ``chromosome``/``position``
        target_build: Build the record is lifted to
        lifted_chromosome: Target-build chromosome (after liftover)
        lifted_position: Target-build position (after liftover)
        hg19_chromosome: hg19 chromosome when the lift passed through hg19
        hg19_position: hg19 position when the lift passed through hg19
        status: Outcome so far (None while still unresolved)
        status_detail: Sub-status explaining the outcome
        orientation: Action applied by the reference check
        rsid: dbSNP rsID (after join)
        allele_frequency: dbSNP frequency of the alt allele (after join)
        population_frequencies: Extra dbSNP frequency columns (after join)
    """

    row_id: int
    chromosome: str
    position: int
    ref: str
    alt: str
    effect_size: float
    standard_error: float | None = None
    pvalue: float | None = None
    eaf: float | None = None
    pvalue_het: float | None = None
    n_total: float | None = None
    n_case: float | None = None
    n_ctrl: float | None = None
    source_build: str = "hg19"
    target_build: str = "hg38"

    lifted_chromosome: str | None = None
    lifted_position: int | None = None
    hg19_chromosome: str | None = None
    hg19_position: int | None = None

    status: VariantStatus | None = None
    status_detail: str | None = None

    orientation: OrientationAction = OrientationAction.NONE

    rsid: str | None = None
    allele_frequency: float | None = None
    population_frequencies: tuple[tuple[str, float | None], ...] = ()

    @property
    def is_lifted(self) -> bool:
        """True once the record has target-build coordinates."""
        return self.lifted_position is not None

    @property
    def is_unmapped(self) -> bool:
        """True if liftover failed for this record."""
        return self.status == VariantStatus.UNMAPPED_LIFTOVER


@dataclass(frozen=True, slots=True)
class RegionQuery:
    """A reference-sequence region (1-based, inclusive)."""

    chromosome: str
    start: int
    end: int


@dataclass(frozen=True)
class LiftoverBatch:
    """Bounded group of records submitted together to the liftover tool."""

    batch_id: int
    records: tuple[SummaryStatRecord, ...]

    def __len__(self) -> int:
        return len(self.records)


@dataclass(frozen=True)
class ReferenceLookupBatch:
    """Bounded group of deduplicated region queries for the sequence tool."""

    batch_id: int
    queries: tuple[RegionQuery, ...]

    def __len__(self) -> int:
        return len(self.queries)


@dataclass(frozen=True, slots=True)
class DbSNPEntry:
    """One (chromosome, position, ref, alt) row of the dbSNP table.

    Attributes:
        chromosome: Chromosome ("chr1", ...)
        pos: Target-build position
        ref: Reference allele
        alt: Alternate allele
        rsid: Canonical rsID
        allele_frequency: Population frequency of ``alt``
        population_frequencies: Extra frequency columns, in configured order
    """

    chromosome: str
    pos: int
    ref: str
    alt: str
    rsid: str
    allele_frequency: float | None = None
    population_frequencies: tuple[tuple[str, float | None], ...] = ()


@dataclass(frozen=True, slots=True)
class JoinResult:
    """Outcome of matching one record against the dbSNP table."""

    rsid: str | None = None
    allele_frequency: float | None = None
    population_frequencies: tuple[tuple[str, float | None], ...] = ()
    reversed: bool = False
    detail: str | None = None

    @property
    def matched(self) -> bool:
        return self.rsid is not None


@dataclass(frozen=True, slots=True)
class HarmonizedRecord:
    """Output row in the canonical schema."""

    rsid: str | None
    unique_id: str
    chromosome: str
    position: int | None
    source_chromosome: str
    source_position: int
    hg19_chromosome: str | None
    hg19_position: int | None
    ref: str
    alt: str
    effect_size: float
    standard_error: float | None
    eaf: float | None
    pvalue: float | None
    pvalue_het: float | None
    n_total: float | None
    n_case: float | None
    n_ctrl: float | None
    allele_frequency: float | None
    population_frequencies: tuple[tuple[str, float | None], ...]
    status: VariantStatus
    status_detail: str | None
    row_id: int = 0


@dataclass
class RunSummary:
    """Running statistics for one harmonization run.

    Every record that is not resolved is attributable to one of these
    counts, so missing rsIDs or coordinates are never silent.
    """

    # Parsing
    input_rows: int = 0
    parsed: int = 0
    parse_errors: Counter = field(default_factory=Counter)

    # Liftover
    liftover_batches: int = 0
    liftover_batches_failed: int = 0
    liftover_short_circuit: bool = False
    liftover_multiple_mappings: int = 0

    # Reference lookup
    lookup_batches: int = 0
    lookup_batches_failed: int = 0
    lookup_queries: int = 0
    missing_reference: int = 0
    strand_flips: int = 0
    allele_swaps: int = 0

    # dbSNP join
    dbsnp_lines_scanned: int = 0
    dbsnp_malformed: int = 0
    dbsnp_ambiguous: int = 0

    # Output
    written: int = 0
    status_counts: Counter = field(default_factory=Counter)
    detail_counts: Counter = field(default_factory=Counter)

    # Batch-level failure log
    failures: list[str] = field(default_factory=list)

    @property
    def parse_error_total(self) -> int:
        """Rows excluded while parsing."""
        return sum(self.parse_errors.values())

    @property
    def all_liftover_batches_failed(self) -> bool:
        return self.liftover_batches > 0 and (
            self.liftover_batches_failed == self.liftover_batches
        )

    def count(self, status: VariantStatus) -> int:
        """Number of written records with ``status``."""
        return self.status_counts.get(status.value, 0)

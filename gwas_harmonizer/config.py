"""Configuration dataclass for the GWAS harmonizer.

Configuration options consumed by the harmonization pipeline. The CLI (or a
caller embedding the pipeline) owns how these values are obtained.
"""

from dataclasses import dataclass, field
from pathlib import Path

from gwas_harmonizer.exceptions import ConfigurationError
from gwas_harmonizer.tool_runner import find_executable
from gwas_harmonizer.utils import normalize_build


@dataclass
class Config:
    """Configuration for one single-trait harmonization run.

    Attributes:
        input_file: Raw summary-statistics file (may be gzipped)
        output_file: Output path for the gzipped harmonized table
        dbsnp_file: dbSNP-derived reference table sorted by chromosome/position
        fasta_ref: Target-build reference FASTA (indexed with samtools faidx)
        trait_name: Trait identifier, used only for labeling
        source_build: Genome build of the input coordinates
        target_build: Genome build of the output coordinates
        liftover_path: liftOver executable (auto-detect if None)
        liftover_dir: Directory holding UCSC chain files
        chain_files: Explicit chain files, applied in order (overrides liftover_dir)
        samtools_path: samtools executable (auto-detect if None)
        column_map: Canonical field -> source column name overrides
        delimiter: Input delimiter ("tab", "comma", "space", "whitespace" or a character)
        effect_is_or: Effect column holds odds ratios (converted to log-odds)
        n_total: Constant total sample size when no column is present
        n_case: Constant case count when no column is present
        n_ctrl: Constant control count when no column is present
        liftover_chunk_size: Records per liftOver invocation
        lookup_chunk_size: Regions per samtools faidx invocation
        max_workers: Parallel batch workers (default: CPU count)
        tool_timeout: Seconds before an external tool invocation is abandoned
        dbsnp_af_column: dbSNP column holding the population allele frequency
        extra_af_columns: Further dbSNP frequency columns copied to the output
        abort_on_total_liftover_failure: Raise if every liftover batch fails
        report_file: JSON report path (default: next to the output file)
        log_dir: Directory for run logs (default: output directory)
        keep_temp_files: Keep per-batch temporary directories
        verbose: Enable verbose logging
    """

    input_file: Path
    output_file: Path
    dbsnp_file: Path
    fasta_ref: Path

    trait_name: str = "trait"
    source_build: str = "hg19"
    target_build: str = "hg38"

    # External tools
    liftover_path: Path | None = None
    liftover_dir: Path | None = None
    chain_files: list[Path] = field(default_factory=list)
    samtools_path: Path | None = None

    # Input layout
    column_map: dict[str, str] = field(default_factory=dict)
    delimiter: str = "tab"
    effect_is_or: bool = False
    n_total: float | None = None
    n_case: float | None = None
    n_ctrl: float | None = None

    # Batching
    liftover_chunk_size: int = 100_000
    lookup_chunk_size: int = 10_000
    max_workers: int | None = None
    tool_timeout: int = 3600

    # dbSNP columns
    dbsnp_af_column: str = "AF"
    extra_af_columns: list[str] = field(default_factory=list)

    # Behavior flags
    abort_on_total_liftover_failure: bool = False
    report_file: Path | None = None
    log_dir: Path | None = None
    keep_temp_files: bool = False
    verbose: bool = False

    def __post_init__(self) -> None:
        """Validate configuration types and set defaults."""
        for name in ("input_file", "output_file", "dbsnp_file", "fasta_ref"):
            value = getattr(self, name)
            if isinstance(value, str):
                setattr(self, name, Path(value))

        for name in ("liftover_path", "liftover_dir", "samtools_path", "report_file", "log_dir"):
            value = getattr(self, name)
            if isinstance(value, str):
                setattr(self, name, Path(value))

        self.chain_files = [Path(p) for p in self.chain_files]

        # Keep the labels as given if unknown; validate() reports them
        self.source_build = normalize_build(self.source_build) or self.source_build
        self.target_build = normalize_build(self.target_build) or self.target_build

        if self.report_file is None:
            self.report_file = self.output_file.parent / f"{self.file_stem}-report.json"

        if self.log_dir is None:
            self.log_dir = self.output_file.parent

    @property
    def file_stem(self) -> str:
        """Output file name without the .tsv/.gz extensions."""
        name = self.output_file.name
        for suffix in (".gz", ".bgz", ".tsv", ".txt"):
            if name.endswith(suffix):
                name = name[: -len(suffix)]
        return name

    @property
    def needs_liftover(self) -> bool:
        """True if source and target builds differ."""
        return self.source_build != self.target_build

    @property
    def fasta_index(self) -> Path:
        """Path to the samtools .fai index of the reference FASTA."""
        return self.fasta_ref.parent / f"{self.fasta_ref.name}.fai"

    def resolve_liftover(self) -> Path | None:
        """Locate the liftOver executable (configured path or PATH)."""
        return find_executable(self.liftover_path, "liftOver", "liftover")

    def resolve_samtools(self) -> Path | None:
        """Locate the samtools executable (configured path or PATH)."""
        return find_executable(self.samtools_path, "samtools")

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors.

        Returns:
            List of error messages (empty if valid)
        """
        from gwas_harmonizer.liftover_runner import resolve_chain_files
        from gwas_harmonizer.parsers.sumstats import resolve_delimiter

        errors: list[str] = []

        if not self.input_file.exists():
            errors.append(f"Input file not found: {self.input_file}")

        if not self.dbsnp_file.exists():
            errors.append(f"dbSNP file not found: {self.dbsnp_file}")

        if not self.fasta_ref.exists():
            errors.append(f"Reference FASTA not found: {self.fasta_ref}")
        elif not self.fasta_index.exists():
            errors.append(
                f"Reference FASTA index not found: {self.fasta_index} "
                f"(run 'samtools faidx {self.fasta_ref}')"
            )

        if not self.output_file.parent.exists():
            errors.append(f"Output directory does not exist: {self.output_file.parent}")

        builds_known = True
        for label, build in (("source", self.source_build), ("target", self.target_build)):
            if normalize_build(build) is None:
                builds_known = False
                errors.append(f"Unknown {label} build '{build}'. Valid options: hg17, hg18, hg19, hg38")

        try:
            resolve_delimiter(self.delimiter)
        except ConfigurationError as e:
            errors.append(str(e))

        if self.liftover_chunk_size < 1:
            errors.append(f"liftover_chunk_size must be at least 1: {self.liftover_chunk_size}")

        if self.lookup_chunk_size < 1:
            errors.append(f"lookup_chunk_size must be at least 1: {self.lookup_chunk_size}")

        if self.max_workers is not None and self.max_workers < 1:
            errors.append(f"max_workers must be at least 1: {self.max_workers}")

        if self.resolve_samtools() is None:
            errors.append(f"samtools executable not found: {self.samtools_path or 'samtools'}")

        if self.needs_liftover and builds_known:
            if self.resolve_liftover() is None:
                errors.append(f"liftOver executable not found: {self.liftover_path or 'liftOver'}")
            try:
                chains = self.chain_files or resolve_chain_files(
                    self.liftover_dir, self.source_build, self.target_build
                )
            except ValueError as e:
                errors.append(str(e))
            else:
                for chain in chains:
                    if not chain.exists():
                        errors.append(f"Chain file not found: {chain}")

        return errors

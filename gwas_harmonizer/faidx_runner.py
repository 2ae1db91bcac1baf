"""Reference sequence lookup with ``samtools faidx``.

Deduplicated region queries are batched and each batch is fetched by one
``samtools faidx <fasta> -r regions.txt -o out.fa`` call in its own
temporary directory. Batches run on a thread pool.

Queries the index cannot satisfy (unknown contig, region past the contig
end) are never sent to samtools; they resolve to a missing reference.
"""

import logging
import shutil
import tempfile
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path

from gwas_harmonizer.exceptions import ConfigurationError, LookupBatchError
from gwas_harmonizer.models import ReferenceLookupBatch, RegionQuery, RunSummary, SummaryStatRecord
from gwas_harmonizer.tool_runner import run_tool
from gwas_harmonizer.utils import chromosome_sort_key, make_region, strip_chr_prefix

logger = logging.getLogger(__name__)


@dataclass
class FastaIndex:
    """Contig names and lengths from a samtools ``.fai`` index.

    Attributes:
        fasta: Indexed FASTA file
        lengths: Contig name -> length in bases
    """

    fasta: Path
    lengths: dict[str, int] = field(default_factory=dict)

    @classmethod
    def load(cls, fasta: Path) -> "FastaIndex":
        """Read ``<fasta>.fai``.

        Raises:
            ConfigurationError: If the index is missing or malformed
        """
        fai = fasta.parent / f"{fasta.name}.fai"
        if not fai.exists():
            raise ConfigurationError(
                f"Reference FASTA index not found: {fai} (run 'samtools faidx {fasta}')"
            )

        lengths: dict[str, int] = {}
        with open(fai) as f:
            for line_num, line in enumerate(f, 1):
                if not line.strip():
                    continue
                fields = line.rstrip("\n").split("\t")
                try:
                    lengths[fields[0]] = int(fields[1])
                except (IndexError, ValueError):
                    raise ConfigurationError(f"Malformed FASTA index line {line_num} in {fai}")

        logger.debug("Loaded %d contigs from %s", len(lengths), fai)
        return cls(fasta=fasta, lengths=lengths)

    @property
    def uses_chr_prefix(self) -> bool:
        """True if contigs are named "chr1" rather than "1"."""
        return any(name.startswith("chr") for name in self.lengths)

    def contig_for(self, chromosome: str) -> str | None:
        """Translate a normalized chromosome to this FASTA's contig name.

        Example:
            >>> FastaIndex(fasta, {"1": 248956422, "MT": 16569}).contig_for("chrM")
            "MT"
        """
        bare = strip_chr_prefix(chromosome)
        candidates = [chromosome, bare] if self.uses_chr_prefix else [bare, chromosome]
        if bare == "M":
            candidates += ["chrMT", "MT"]
        for name in candidates:
            if name in self.lengths:
                return name
        return None

    def region_for(self, query: RegionQuery) -> str | None:
        """samtools region string for a query, or None if out of range."""
        contig = self.contig_for(query.chromosome)
        if contig is None or query.start < 1 or query.end > self.lengths[contig]:
            return None
        return make_region(contig, query.start, query.end)


def query_for(record: SummaryStatRecord) -> RegionQuery | None:
    """Region spanning the longer allele at the record's lifted position."""
    if not record.is_lifted:
        return None
    span = max(len(record.ref), len(record.alt))
    return RegionQuery(
        chromosome=record.lifted_chromosome,
        start=record.lifted_position,
        end=record.lifted_position + span - 1,
    )


def parse_faidx_output(fasta_out: Path) -> dict[str, str]:
    """Parse samtools faidx FASTA output into region -> sequence.

    Sequences wrapped over several lines are joined and upper-cased.
    """
    sequences: dict[str, str] = {}
    name: str | None = None
    chunks: list[str] = []

    with open(fasta_out) as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            if line.startswith(">"):
                if name is not None:
                    sequences[name] = "".join(chunks).upper()
                name = line[1:].split()[0]
                chunks = []
            else:
                chunks.append(line)

    if name is not None:
        sequences[name] = "".join(chunks).upper()
    return sequences


def make_lookup_batches(queries: Iterable[RegionQuery], chunk_size: int) -> list[ReferenceLookupBatch]:
    """Deduplicate, sort and batch region queries."""
    ordered = sorted(
        set(queries),
        key=lambda q: (chromosome_sort_key(q.chromosome), q.start, q.end),
    )
    return [
        ReferenceLookupBatch(batch_id=i, queries=tuple(ordered[start:start + chunk_size]))
        for i, start in enumerate(range(0, len(ordered), chunk_size), 1)
    ]


@dataclass
class LookupResult:
    """Fetched sequences for a set of queries.

    Attributes:
        sequences: Query -> upper-cased sequence, None if missing
        failed: Queries whose batch failed
    """

    sequences: dict[RegionQuery, str | None] = field(default_factory=dict)
    failed: set[RegionQuery] = field(default_factory=set)


class ReferenceLookup:
    """Fetches reference bases for region queries in parallel batches."""

    def __init__(
        self,
        samtools_path: Path | None,
        index: FastaIndex,
        chunk_size: int = 10_000,
        max_workers: int | None = None,
        timeout: int = 3600,
        keep_temp_files: bool = False,
        work_dir: Path | None = None,
    ) -> None:
        self.samtools_path = samtools_path
        self.index = index
        self.chunk_size = chunk_size
        self.max_workers = max_workers
        self.timeout = timeout
        self.keep_temp_files = keep_temp_files
        self.work_dir = work_dir

    def run_batch(self, batch: ReferenceLookupBatch) -> dict[RegionQuery, str | None]:
        """Fetch one batch of queries.

        Returns:
            Query -> sequence; None for out-of-range queries, regions
            absent from the output, and all-N sequences

        Raises:
            LookupBatchError: If samtools cannot be run or writes no output
        """
        results: dict[RegionQuery, str | None] = {}
        regions: dict[str, RegionQuery] = {}
        for query in batch.queries:
            region = self.index.region_for(query)
            if region is None:
                results[query] = None
            else:
                regions[region] = query

        if not regions:
            return results

        if self.samtools_path is None:
            raise LookupBatchError(batch.batch_id, "samtools executable not found")

        tmp_dir = Path(tempfile.mkdtemp(prefix=f"faidx-{batch.batch_id}-", dir=self.work_dir))
        try:
            regions_file = tmp_dir / "regions.txt"
            fasta_out = tmp_dir / "out.fa"
            regions_file.write_text("".join(f"{region}\n" for region in regions))

            result = run_tool(
                [
                    str(self.samtools_path), "faidx", str(self.index.fasta),
                    "-r", str(regions_file),
                    "-o", str(fasta_out),
                ],
                timeout=self.timeout,
            )
            if not result.success:
                raise LookupBatchError(
                    batch.batch_id,
                    f"samtools faidx failed: {result.stderr.strip() or 'no error output'}",
                )
            if not fasta_out.exists():
                raise LookupBatchError(batch.batch_id, "samtools faidx did not write output")

            fetched = parse_faidx_output(fasta_out)
        finally:
            if self.keep_temp_files:
                logger.debug("Keeping faidx temp dir %s", tmp_dir)
            else:
                shutil.rmtree(tmp_dir, ignore_errors=True)

        for region, query in regions.items():
            sequence = fetched.get(region)
            expected = query.end - query.start + 1
            if not sequence or len(sequence) != expected or set(sequence) == {"N"}:
                results[query] = None
            else:
                results[query] = sequence
        return results

    def fetch(
        self,
        queries: Iterable[RegionQuery],
        summary: RunSummary,
        on_batch_done: Callable[[int], None] | None = None,
    ) -> LookupResult:
        """Fetch every query.

        Args:
            queries: Region queries (duplicates allowed)
            summary: Run summary updated with batch counts
            on_batch_done: Called with the batch size as each batch finishes

        Returns:
            LookupResult covering every distinct query
        """
        batches = make_lookup_batches(queries, self.chunk_size)
        summary.lookup_batches += len(batches)
        summary.lookup_queries += sum(len(b) for b in batches)

        lookup = LookupResult()
        if not batches:
            return lookup

        logger.info(
            "Fetching %d reference regions in %d batches",
            sum(len(b) for b in batches),
            len(batches),
        )

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_batch = {
                executor.submit(self.run_batch, batch): batch for batch in batches
            }

            for future in as_completed(future_to_batch):
                batch = future_to_batch[future]
                try:
                    lookup.sequences.update(future.result())
                except LookupBatchError as e:
                    summary.lookup_batches_failed += 1
                    summary.failures.append(str(e))
                    logger.error("%s", e)
                    lookup.failed.update(batch.queries)
                if on_batch_done is not None:
                    on_batch_done(len(batch))

        return lookup

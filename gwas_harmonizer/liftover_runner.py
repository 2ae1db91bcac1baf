"""Chunked liftover of summary-statistics records with UCSC liftOver.

Records are sorted by source coordinate, cut into bounded batches, and each
batch is lifted by one liftOver call per chain hop inside its own temporary
directory. Batches run concurrently on a thread pool; the workers only wait
on the external process.

Pipeline per batch:
1. Write ``in.bed`` (chrom, pos-1, pos, row_id)
2. Run ``liftOver in.bed <chain> out.bed unmapped.bed`` per hop
3. Parse mapped and unmapped output back into records by row_id

A failing batch never aborts the run: its records are marked unmapped with
``liftover-batch-failed`` and the failure is recorded in the run summary.
"""

import logging
import shutil
import tempfile
from collections import defaultdict
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from pathlib import Path

from gwas_harmonizer.exceptions import LiftoverBatchError
from gwas_harmonizer.models import (
    LiftoverBatch,
    RunSummary,
    StatusDetail,
    SummaryStatRecord,
    VariantStatus,
)
from gwas_harmonizer.tool_runner import run_tool
from gwas_harmonizer.utils import chromosome_sort_key, normalize_chromosome

logger = logging.getLogger(__name__)

# Supported build pairs and the chain hops they take. hg17/hg18 reach hg38
# through hg19; lifting back to hg17/hg18 is not supported.
CHAIN_HOPS: dict[tuple[str, str], tuple[tuple[str, str], ...]] = {
    ("hg17", "hg19"): (("hg17", "hg19"),),
    ("hg18", "hg19"): (("hg18", "hg19"),),
    ("hg19", "hg38"): (("hg19", "hg38"),),
    ("hg38", "hg19"): (("hg38", "hg19"),),
    ("hg17", "hg38"): (("hg17", "hg19"), ("hg19", "hg38")),
    ("hg18", "hg38"): (("hg18", "hg19"), ("hg19", "hg38")),
}


def chain_file_name(source: str, target: str) -> str:
    """UCSC chain file name for one hop.

    Example:
        >>> chain_file_name("hg19", "hg38")
        "hg19ToHg38.over.chain.gz"
    """
    return f"{source}To{target[0].upper()}{target[1:]}.over.chain.gz"


def resolve_chain_files(
    liftover_dir: Path | None,
    source_build: str,
    target_build: str,
) -> list[Path]:
    """Ordered chain files lifting ``source_build`` to ``target_build``.

    Args:
        liftover_dir: Directory holding the UCSC chain files
        source_build: Normalized source build ("hg19", ...)
        target_build: Normalized target build

    Returns:
        Chain file paths, one per hop (empty for identical builds)

    Raises:
        ValueError: If the build pair is unsupported or no directory is given
    """
    if source_build == target_build:
        return []

    hops = CHAIN_HOPS.get((source_build, target_build))
    if hops is None:
        raise ValueError(f"Liftover from {source_build} to {target_build} is not supported")
    if liftover_dir is None:
        raise ValueError(
            f"Liftover from {source_build} to {target_build} requires a chain file directory"
        )

    return [liftover_dir / chain_file_name(src, dst) for src, dst in hops]


def intermediate_hg19_hop(source_build: str, target_build: str) -> int | None:
    """1-based hop whose output is hg19 when hg19 is only a waypoint.

    Example:
        >>> intermediate_hg19_hop("hg18", "hg38")
        1
    """
    hops = CHAIN_HOPS.get((source_build, target_build), ())
    for hop, (_, dst) in enumerate(hops[:-1], 1):
        if dst == "hg19":
            return hop
    return None


def passthrough_records(records: Iterable[SummaryStatRecord]) -> list[SummaryStatRecord]:
    """Use source coordinates as lifted coordinates (identical builds)."""
    return [
        replace(r, lifted_chromosome=r.chromosome, lifted_position=r.position)
        for r in records
    ]


def make_batches(records: list[SummaryStatRecord], chunk_size: int) -> list[LiftoverBatch]:
    """Sort records by source coordinate and cut them into batches.

    Example:
        >>> [len(b) for b in make_batches(records_250, 100)]
        [100, 100, 50]
    """
    ordered = sorted(
        records,
        key=lambda r: (chromosome_sort_key(r.chromosome), r.position, r.row_id),
    )
    return [
        LiftoverBatch(batch_id=i, records=tuple(ordered[start:start + chunk_size]))
        for i, start in enumerate(range(0, len(ordered), chunk_size), 1)
    ]


def mark_unmapped(record: SummaryStatRecord, detail: str) -> SummaryStatRecord:
    """Return the record flagged as unmapped by liftover."""
    return replace(
        record,
        lifted_chromosome=None,
        lifted_position=None,
        status=VariantStatus.UNMAPPED_LIFTOVER,
        status_detail=detail,
    )


def write_bed(records: Iterable[SummaryStatRecord], bed_file: Path) -> int:
    """Write records as 0-based half-open BED intervals named by row_id.

    Returns:
        Number of lines written
    """
    count = 0
    with open(bed_file, "w") as f:
        for r in records:
            f.write(f"{r.chromosome}\t{r.position - 1}\t{r.position}\t{r.row_id}\n")
            count += 1
    return count


def parse_mapped_bed(bed_file: Path, batch_id: int) -> dict[int, list[tuple[str, int]]]:
    """Parse liftOver mapped output.

    Returns:
        row_id -> list of (chromosome, 1-based position); a row_id with
        more than one entry mapped to several places

    Raises:
        LiftoverBatchError: If a line cannot be parsed
    """
    mapped: dict[int, list[tuple[str, int]]] = defaultdict(list)
    with open(bed_file) as f:
        for line_num, line in enumerate(f, 1):
            if not line.strip() or line.startswith("#"):
                continue
            fields = line.split()
            if len(fields) < 4:
                raise LiftoverBatchError(
                    batch_id, f"malformed mapped line {line_num} in {bed_file.name}: {line.strip()!r}"
                )
            try:
                start = int(fields[1])
                row_id = int(fields[3])
            except ValueError:
                raise LiftoverBatchError(
                    batch_id, f"malformed mapped line {line_num} in {bed_file.name}: {line.strip()!r}"
                )
            mapped[row_id].append((normalize_chromosome(fields[0]), start + 1))
    return mapped


def parse_unmapped_bed(bed_file: Path, batch_id: int) -> set[int]:
    """Parse liftOver unmapped output.

    Each unmapped interval is preceded by a ``#Deleted in new`` style
    comment line, which is skipped.

    Raises:
        LiftoverBatchError: If a line cannot be parsed
    """
    unmapped: set[int] = set()
    with open(bed_file) as f:
        for line_num, line in enumerate(f, 1):
            if not line.strip() or line.startswith("#"):
                continue
            fields = line.split()
            try:
                unmapped.add(int(fields[3]))
            except (IndexError, ValueError):
                raise LiftoverBatchError(
                    batch_id, f"malformed unmapped line {line_num} in {bed_file.name}: {line.strip()!r}"
                )
    return unmapped


class LiftoverCoordinator:
    """Lifts records to the target build in parallel batches.

    Usage:
        coordinator = LiftoverCoordinator(liftover_path, chain_files)
        lifted = coordinator.run(records, summary)
    """

    def __init__(
        self,
        liftover_path: Path | None,
        chain_files: list[Path],
        chunk_size: int = 100_000,
        max_workers: int | None = None,
        timeout: int = 3600,
        keep_temp_files: bool = False,
        work_dir: Path | None = None,
        abort_on_total_failure: bool = False,
        hg19_hop: int | None = None,
    ) -> None:
        """Initialize coordinator.

        Args:
            liftover_path: liftOver executable (a missing binary fails every batch)
            chain_files: Chain files applied in order, one liftOver call each
            chunk_size: Maximum records per batch
            max_workers: Parallel batches (default: ThreadPoolExecutor default)
            timeout: Seconds before one liftOver call is abandoned
            keep_temp_files: Keep per-batch temporary directories
            work_dir: Parent for temporary directories (system default if None)
            abort_on_total_failure: Raise if every batch fails
            hg19_hop: Hop whose output is hg19, kept as the record's hg19
                coordinates (None when hg19 is not a waypoint)
        """
        self.liftover_path = liftover_path
        self.chain_files = chain_files
        self.chunk_size = chunk_size
        self.max_workers = max_workers
        self.timeout = timeout
        self.keep_temp_files = keep_temp_files
        self.work_dir = work_dir
        self.abort_on_total_failure = abort_on_total_failure
        self.hg19_hop = hg19_hop

    def run_batch(self, batch: LiftoverBatch) -> list[SummaryStatRecord]:
        """Lift one batch.

        Args:
            batch: Records to lift

        Returns:
            The batch's records with lifted coordinates or an unmapped status

        Raises:
            LiftoverBatchError: If liftOver cannot be run or its output is unusable
        """
        if self.liftover_path is None:
            raise LiftoverBatchError(batch.batch_id, "liftOver executable not found")

        tmp_dir = Path(tempfile.mkdtemp(prefix=f"liftover-{batch.batch_id}-", dir=self.work_dir))
        try:
            current = tmp_dir / "in.bed"
            write_bed(batch.records, current)

            unmapped: set[int] = set()
            multiple: set[int] = set()
            mapped: dict[int, list[tuple[str, int]]] = {}
            waypoint: dict[int, tuple[str, int]] = {}

            for hop, chain in enumerate(self.chain_files, 1):
                out_bed = tmp_dir / f"hop{hop}.bed"
                unmapped_bed = tmp_dir / f"hop{hop}.unmapped.bed"

                result = run_tool(
                    [str(self.liftover_path), str(current), str(chain), str(out_bed), str(unmapped_bed)],
                    timeout=self.timeout,
                )
                if not result.success:
                    raise LiftoverBatchError(
                        batch.batch_id,
                        f"liftOver failed with {chain.name}: {result.stderr.strip() or 'no error output'}",
                    )
                for output in (out_bed, unmapped_bed):
                    if not output.exists():
                        raise LiftoverBatchError(batch.batch_id, f"liftOver did not write {output.name}")

                unmapped |= parse_unmapped_bed(unmapped_bed, batch.batch_id)
                mapped = parse_mapped_bed(out_bed, batch.batch_id)
                multiple |= {row_id for row_id, hits in mapped.items() if len(hits) > 1}
                if hop == self.hg19_hop:
                    waypoint = {row_id: hits[0] for row_id, hits in mapped.items() if len(hits) == 1}
                current = out_bed

            return self._apply(batch, mapped, unmapped, multiple, waypoint)
        finally:
            if self.keep_temp_files:
                logger.debug("Keeping liftover temp dir %s", tmp_dir)
            else:
                shutil.rmtree(tmp_dir, ignore_errors=True)

    @staticmethod
    def _apply(
        batch: LiftoverBatch,
        mapped: dict[int, list[tuple[str, int]]],
        unmapped: set[int],
        multiple: set[int],
        waypoint: dict[int, tuple[str, int]],
    ) -> list[SummaryStatRecord]:
        lifted: list[SummaryStatRecord] = []
        for r in batch.records:
            if r.row_id in waypoint:
                hg19_chrom, hg19_pos = waypoint[r.row_id]
                r = replace(r, hg19_chromosome=hg19_chrom, hg19_position=hg19_pos)
            if r.row_id in multiple:
                lifted.append(mark_unmapped(r, StatusDetail.MULTIPLE_MAPPINGS))
            elif r.row_id in unmapped:
                lifted.append(mark_unmapped(r, StatusDetail.LIFTOVER_UNMAPPED))
            elif r.row_id in mapped:
                chrom, pos = mapped[r.row_id][0]
                lifted.append(replace(r, lifted_chromosome=chrom, lifted_position=pos))
            else:
                lifted.append(mark_unmapped(r, StatusDetail.LIFTOVER_DROPPED))
        return lifted

    def run(
        self,
        records: list[SummaryStatRecord],
        summary: RunSummary,
        on_batch_done: Callable[[int], None] | None = None,
    ) -> list[SummaryStatRecord]:
        """Lift all records.

        Args:
            records: Parsed records in source coordinates
            summary: Run summary updated with batch and mapping counts
            on_batch_done: Called with the batch size as each batch finishes

        Returns:
            Records in input order, each lifted or marked unmapped

        Raises:
            LiftoverBatchError: If every batch failed and the coordinator
                was configured to abort
        """
        batches = make_batches(records, self.chunk_size)
        summary.liftover_batches += len(batches)
        if not batches:
            return []

        logger.info(
            "Lifting %d records in %d batches over %d chain hop(s)",
            len(records),
            len(batches),
            len(self.chain_files),
        )

        by_id: dict[int, SummaryStatRecord] = {}
        failed = 0

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_batch = {
                executor.submit(self.run_batch, batch): batch for batch in batches
            }

            for future in as_completed(future_to_batch):
                batch = future_to_batch[future]
                try:
                    lifted = future.result()
                except LiftoverBatchError as e:
                    failed += 1
                    summary.failures.append(str(e))
                    logger.error("%s", e)
                    lifted = [
                        mark_unmapped(r, StatusDetail.LIFTOVER_BATCH_FAILED)
                        for r in batch.records
                    ]
                else:
                    logger.debug("Liftover batch %d complete (%d records)", batch.batch_id, len(batch))

                for r in lifted:
                    by_id[r.row_id] = r
                if on_batch_done is not None:
                    on_batch_done(len(batch))

        summary.liftover_batches_failed += failed
        summary.liftover_multiple_mappings += sum(
            1 for r in by_id.values() if r.status_detail == StatusDetail.MULTIPLE_MAPPINGS
        )

        if failed == len(batches):
            if self.abort_on_total_failure:
                raise LiftoverBatchError(None, f"all {len(batches)} batches failed")
            logger.warning("All %d liftover batches failed; every record is unmapped", len(batches))

        return [by_id[r.row_id] for r in records]

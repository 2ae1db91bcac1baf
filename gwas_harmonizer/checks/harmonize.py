"""Final status assignment and output record assembly."""

from dataclasses import replace

from gwas_harmonizer.models import (
    HarmonizedRecord,
    JoinResult,
    SummaryStatRecord,
    VariantStatus,
)
from gwas_harmonizer.utils import chromosome_sort_key, make_unique_id


def final_status(record: SummaryStatRecord, join: JoinResult | None) -> tuple[VariantStatus, str | None]:
    """Decide a record's final status and detail.

    Unmapped and allele-mismatch records keep the status they were given
    upstream. Otherwise the dbSNP join decides between resolved and novel.
    """
    if record.status is not None:
        return record.status, record.status_detail
    if join is not None and join.matched:
        return VariantStatus.RESOLVED, record.status_detail
    detail = join.detail if join is not None else None
    return VariantStatus.NOVEL_VARIANT, detail


def apply_join(record: SummaryStatRecord, join: JoinResult) -> SummaryStatRecord:
    """Return the record annotated with its dbSNP join outcome.

    Matched records take the rsID and frequencies; every record leaves
    with its final status. Allele-mismatch records keep their status but
    are still annotated when the join matched them.
    """
    if record.is_unmapped:
        return record

    status, detail = final_status(record, join)
    if not join.matched:
        return replace(record, status=status, status_detail=detail)
    return replace(
        record,
        rsid=join.rsid,
        allele_frequency=join.allele_frequency,
        population_frequencies=join.population_frequencies,
        status=status,
        status_detail=detail,
    )


def hg19_coordinates(record: SummaryStatRecord) -> tuple[str | None, int | None]:
    """hg19 coordinates of a record, when known.

    hg19 input keeps its source coordinates and an hg19 target its lifted
    ones. A lift through hg19 carries the intermediate position. hg38 input
    is not lifted back, so it has none.
    """
    if record.source_build == "hg19":
        return record.chromosome, record.position
    if record.target_build == "hg19":
        return record.lifted_chromosome, record.lifted_position
    return record.hg19_chromosome, record.hg19_position


def harmonize_record(record: SummaryStatRecord) -> HarmonizedRecord:
    """Build the output row for a record.

    Unmapped records are written on source coordinates with no target
    position. A record that never reached the join is written as novel.
    """
    status, detail = final_status(record, None)

    if record.is_lifted:
        chromosome, position = record.lifted_chromosome, record.lifted_position
        unique_id = make_unique_id(chromosome, position, record.ref, record.alt)
    else:
        chromosome, position = record.chromosome, None
        unique_id = make_unique_id(record.chromosome, record.position, record.ref, record.alt)
    hg19_chromosome, hg19_position = hg19_coordinates(record)

    return HarmonizedRecord(
        rsid=record.rsid,
        unique_id=unique_id,
        chromosome=chromosome,
        position=position,
        source_chromosome=record.chromosome,
        source_position=record.position,
        hg19_chromosome=hg19_chromosome,
        hg19_position=hg19_position,
        ref=record.ref,
        alt=record.alt,
        effect_size=record.effect_size,
        standard_error=record.standard_error,
        eaf=record.eaf,
        pvalue=record.pvalue,
        pvalue_het=record.pvalue_het,
        n_total=record.n_total,
        n_case=record.n_case,
        n_ctrl=record.n_ctrl,
        allele_frequency=record.allele_frequency,
        population_frequencies=record.population_frequencies,
        status=status,
        status_detail=detail,
        row_id=record.row_id,
    )


def output_sort_key(row: HarmonizedRecord) -> tuple:
    """Deterministic output order.

    Natural chromosome order, then position (unmapped rows last within a
    chromosome), then source position, alleles and input row.
    """
    return (
        chromosome_sort_key(row.chromosome),
        row.position is None,
        row.position or 0,
        row.source_position,
        row.ref,
        row.alt,
        row.row_id,
    )

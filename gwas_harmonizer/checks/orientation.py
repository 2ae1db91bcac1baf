"""Allele orientation check against the target-build reference.

Decides, from the reference base(s) at a record's lifted position, whether
the record is already reference-oriented, reported on the opposite strand,
reported with ref/alt exchanged, or cannot be reconciled.

Rules for single-base alleles, applied in order:
1. ref == base                    - keep
2. complement(ref) == base        - strand flip, effect sign kept
3. alt == base                    - allele swap, effect negated, EAF -> 1 - EAF
4. complement(alt) == base        - strand flip + allele swap
0. otherwise                      - mismatch (no allele matches)

A/T and C/G pairs follow the same order, so a complemented ref that
matches is taken as a strand flip. Multi-base alleles use rules 1, 3 and 0
against the fetched span.
"""

from collections.abc import Iterable
from dataclasses import dataclass, replace

from gwas_harmonizer.faidx_runner import LookupResult, query_for
from gwas_harmonizer.models import (
    OrientationAction,
    RunSummary,
    StatusDetail,
    SummaryStatRecord,
    VariantStatus,
)
from gwas_harmonizer.utils import complement, complement_pair, is_snv

# Status detail kept on records whose orientation was corrected
ACTION_DETAILS: dict[OrientationAction, str | None] = {
    OrientationAction.NONE: None,
    OrientationAction.FLIP: StatusDetail.STRAND_FLIP,
    OrientationAction.SWAP: StatusDetail.ALLELE_SWAP,
    OrientationAction.FLIP_SWAP: StatusDetail.STRAND_FLIP_ALLELE_SWAP,
}


@dataclass(frozen=True)
class OrientationCheck:
    """Result of checking one allele pair against the reference.

    Attributes:
        action: Correction to apply when the record matches
        mismatch: True if the alleles cannot be reconciled
        detail: Sub-status for a mismatch
        check_code: Rule that decided the outcome (0 for no match)
    """

    action: OrientationAction = OrientationAction.NONE
    mismatch: bool = False
    detail: str | None = None
    check_code: int = 1


def check_orientation(ref: str, alt: str, reference: str) -> OrientationCheck:
    """Check a record's alleles against the reference sequence.

    Args:
        ref: Record reference (other) allele
        alt: Record alternate (effect) allele
        reference: Upper-cased reference sequence at the lifted position,
            spanning the longer of the two alleles

    Returns:
        OrientationCheck with the action needed

    Example:
        >>> check_orientation("T", "C", "A").action
        <OrientationAction.FLIP: 2>
    """
    if not is_snv(ref, alt):
        if reference[: len(ref)] == ref:
            return OrientationCheck(check_code=1)
        if reference[: len(alt)] == alt:
            return OrientationCheck(action=OrientationAction.SWAP, check_code=3)
        return OrientationCheck(mismatch=True, detail=StatusDetail.NO_ALLELE_MATCH, check_code=0)

    base = reference[:1]

    if ref == base:
        return OrientationCheck(check_code=1)

    ref_c, alt_c = complement_pair(ref, alt)

    if ref_c == base:
        return OrientationCheck(action=OrientationAction.FLIP, check_code=2)

    if alt == base:
        return OrientationCheck(action=OrientationAction.SWAP, check_code=3)

    if alt_c == base:
        return OrientationCheck(action=OrientationAction.FLIP_SWAP, check_code=4)

    return OrientationCheck(mismatch=True, detail=StatusDetail.NO_ALLELE_MATCH, check_code=0)


def apply_orientation(record: SummaryStatRecord, check: OrientationCheck) -> SummaryStatRecord:
    """Return the record with the checked correction applied.

    A strand flip complements both alleles and keeps the effect sign. An
    allele swap exchanges ref/alt, negates the effect and mirrors the EAF.
    Mismatched records keep their alleles and get the allele-mismatch status.
    """
    if check.mismatch:
        return replace(
            record,
            status=VariantStatus.ALLELE_MISMATCH,
            status_detail=check.detail,
        )

    ref, alt = record.ref, record.alt
    effect_size, eaf = record.effect_size, record.eaf

    if check.action in (OrientationAction.FLIP, OrientationAction.FLIP_SWAP):
        ref, alt = complement(ref), complement(alt)

    if check.action in (OrientationAction.SWAP, OrientationAction.FLIP_SWAP):
        ref, alt = alt, ref
        effect_size = -effect_size
        if eaf is not None:
            eaf = 1 - eaf

    return replace(
        record,
        ref=ref,
        alt=alt,
        effect_size=effect_size,
        eaf=eaf,
        orientation=check.action,
        status_detail=ACTION_DETAILS[check.action],
    )


def orient_records(
    records: Iterable[SummaryStatRecord],
    lookup: LookupResult,
    summary: RunSummary,
) -> list[SummaryStatRecord]:
    """Check and correct every lifted record against fetched sequences.

    Records without lifted coordinates pass through unchanged.
    """
    oriented: list[SummaryStatRecord] = []

    for record in records:
        query = query_for(record)
        if query is None:
            oriented.append(record)
            continue

        if query in lookup.failed:
            oriented.append(replace(
                record,
                status=VariantStatus.ALLELE_MISMATCH,
                status_detail=StatusDetail.LOOKUP_BATCH_FAILED,
            ))
            continue

        reference = lookup.sequences.get(query)
        if reference is None:
            summary.missing_reference += 1
            oriented.append(replace(
                record,
                status=VariantStatus.ALLELE_MISMATCH,
                status_detail=StatusDetail.MISSING_REFERENCE,
            ))
            continue

        result = apply_orientation(record, check_orientation(record.ref, record.alt, reference))
        if result.orientation in (OrientationAction.FLIP, OrientationAction.FLIP_SWAP):
            summary.strand_flips += 1
        if result.orientation in (OrientationAction.SWAP, OrientationAction.FLIP_SWAP):
            summary.allele_swaps += 1
        oriented.append(result)

    return oriented

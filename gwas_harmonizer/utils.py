"""Utility functions for the GWAS harmonizer.

Allele complement helpers, chromosome normalization, build labels and
the null-token handling shared by the input and dbSNP parsers.
"""

import math

# Complement lookup table for DNA bases
COMPLEMENT: dict[str, str] = {
    "A": "T",
    "T": "A",
    "C": "G",
    "G": "C",
    "N": "N",  # Unknown base stays as N
}

# Tokens treated as missing values in optional columns
NULL_TOKENS: frozenset[str] = frozenset(
    {"", "NA", "N/A", "NAN", "NULL", "NONE", "."}
)

# Allele codes that cannot be placed on the reference
INDEL_MARKERS: frozenset[str] = frozenset({"I", "D", "IND", "DEL", "-"})

# Numeric chromosome codes used by PLINK-style files
_NUMERIC_CHROMOSOMES = {"23": "X", "24": "Y", "25": "M", "26": "M"}

# Build label aliases -> UCSC names
BUILD_ALIASES: dict[str, str] = {
    "hg17": "hg17",
    "ncbi35": "hg17",
    "hg18": "hg18",
    "ncbi36": "hg18",
    "hg19": "hg19",
    "grch37": "hg19",
    "b37": "hg19",
    "hg38": "hg38",
    "grch38": "hg38",
    "b38": "hg38",
}


def complement(allele: str) -> str:
    """Get the complement of a DNA base, or of each base of an allele.

    Args:
        allele: DNA allele (A, T, C, G or N; may be multi-base)

    Returns:
        Complementary allele (A<->T, C<->G, N->N)

    Example:
        >>> complement("A")
        "T"
        >>> complement("GC")
        "CG"
    """
    return "".join(COMPLEMENT.get(base, base) for base in allele)


def complement_pair(a1: str, a2: str) -> tuple[str, str]:
    """Get complements of an allele pair.

    Example:
        >>> complement_pair("A", "C")
        ("T", "G")
    """
    return complement(a1), complement(a2)


def is_snv(a1: str, a2: str) -> bool:
    """Check if both alleles are single bases."""
    return len(a1) == 1 and len(a2) == 1


def is_indel_marker(allele: str) -> bool:
    """Check if an allele is an I/D style placeholder rather than sequence."""
    return allele in INDEL_MARKERS


def normalize_chromosome(chr_val: str) -> str:
    """Normalize a chromosome label to the ``chr``-prefixed form.

    Handles variations like "1" -> "chr1", "chr01" -> "chr1",
    "23" -> "chrX", "MT" -> "chrM".

    Args:
        chr_val: Chromosome value (may include "chr" prefix)

    Returns:
        Normalized chromosome value

    Example:
        >>> normalize_chromosome("1")
        "chr1"
        >>> normalize_chromosome("chr23")
        "chrX"
    """
    chr_val = chr_val.strip()
    if chr_val.lower().startswith("chr"):
        chr_val = chr_val[3:]

    # Remove leading zeros for numeric chromosomes
    if chr_val.isdigit():
        chr_val = str(int(chr_val))
        chr_val = _NUMERIC_CHROMOSOMES.get(chr_val, chr_val)
    else:
        chr_val = chr_val.upper() if len(chr_val) <= 2 else chr_val
        if chr_val == "MT":
            chr_val = "M"

    return f"chr{chr_val}"


def strip_chr_prefix(chr_val: str) -> str:
    """Remove a leading ``chr`` prefix."""
    if chr_val.startswith("chr"):
        return chr_val[3:]
    return chr_val


def chromosome_sort_key(chr_val: str) -> tuple[int, int, str]:
    """Sort key putting chromosomes in natural order.

    Order is 1-22, X, Y, M, then any other contig lexicographically.

    Example:
        >>> sorted(["chr10", "chrX", "chr2"], key=chromosome_sort_key)
        ["chr2", "chr10", "chrX"]
    """
    bare = strip_chr_prefix(chr_val)
    if bare.isdigit():
        return (0, int(bare), "")
    special = {"X": 23, "Y": 24, "M": 25}
    if bare in special:
        return (0, special[bare], "")
    return (1, 0, bare)


def normalize_build(build: str) -> str | None:
    """Map a genome build label to its UCSC name.

    Returns:
        "hg17", "hg18", "hg19", "hg38", or None if the label is unknown

    Example:
        >>> normalize_build("GRCh37")
        "hg19"
    """
    return BUILD_ALIASES.get(build.strip().lower())


def is_null(value: str) -> bool:
    """Check if a field holds one of the missing-value tokens."""
    return value.strip().upper() in NULL_TOKENS


def parse_optional_float(value: str) -> float | None:
    """Parse a float, returning None for missing-value tokens.

    Raises:
        ValueError: If the value is neither a null token nor a number
    """
    if is_null(value):
        return None
    return float(value)


def format_value(value: float | int | str | None) -> str:
    """Format a value for the output table.

    Integral floats are written without a decimal part so sample sizes
    read as "5000" rather than "5000.0".
    """
    if value is None:
        return "NA"
    if isinstance(value, float):
        if math.isnan(value):
            return "NA"
        if value.is_integer() and abs(value) < 1e15:
            return str(int(value))
        return repr(value)
    return str(value)


def make_unique_id(chr_val: str, pos: int, ref: str, alt: str) -> str:
    """Create the placeholder identifier used when no rsID is known.

    Example:
        >>> make_unique_id("chr1", 10000, "A", "G")
        "chr1_10000_A_G"
    """
    return f"{chr_val}_{pos}_{ref}_{alt}"


def make_region(chr_val: str, start: int, end: int) -> str:
    """Create a samtools-style region string.

    Example:
        >>> make_region("chr1", 100, 100)
        "chr1:100-100"
    """
    return f"{chr_val}:{start}-{end}"

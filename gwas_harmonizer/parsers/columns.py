"""Column mapping for raw summary-statistics headers.

Source labs name and order their columns differently. A ``ColumnMapping``
resolves a raw header to the canonical fields: explicit per-trait names
first, then a configurable alias table. Matching is case-insensitive.
"""

import logging
from dataclasses import dataclass, field

from gwas_harmonizer.exceptions import SchemaError

logger = logging.getLogger(__name__)

CANONICAL_FIELDS: tuple[str, ...] = (
    "chromosome",
    "position",
    "ref",
    "alt",
    "effect_size",
    "standard_error",
    "pvalue",
    "eaf",
    "pvalue_het",
    "n_total",
    "n_case",
    "n_ctrl",
)

REQUIRED_FIELDS: tuple[str, ...] = ("chromosome", "position", "ref", "alt", "effect_size")

# A1 is treated as the effect allele, following PLINK association output
DEFAULT_ALIASES: dict[str, tuple[str, ...]] = {
    "chromosome": ("chr", "chrom", "#chrom", "#chr", "chromosome", "chr_name", "chrom_hg19", "chr_hg19", "chr_hg38"),
    "position": ("pos", "bp", "position", "base_pair_location", "genpos", "chr_position", "pos_hg19", "pos_hg38"),
    "ref": ("ref", "a2", "other_allele", "allele0", "nea", "non_effect_allele", "reference_allele"),
    "alt": ("alt", "a1", "effect_allele", "allele1", "ea", "alternate_allele", "tested_allele"),
    "effect_size": ("effect_size", "beta", "b", "effect", "or", "odds_ratio", "log_odds"),
    "standard_error": ("standard_error", "se", "stderr", "std_err", "sebeta"),
    "pvalue": ("pvalue", "p", "pval", "p_value", "p-value", "p.value"),
    "eaf": ("eaf", "effect_allele_frequency", "frq", "freq", "af", "a1freq", "af_alt"),
    "pvalue_het": ("pvalue_het", "p_het", "phet", "het_pval", "het_p"),
    "n_total": ("n_total", "n", "n_samples", "total_n", "sample_size", "obs_ct"),
    "n_case": ("n_case", "n_cases", "ncase", "cases"),
    "n_ctrl": ("n_ctrl", "n_control", "n_controls", "nctrl", "controls"),
}


@dataclass
class ColumnMapping:
    """Maps canonical fields to source columns.

    Attributes:
        explicit: Canonical field -> source column name (trait-specific)
        aliases: Canonical field -> accepted column names, tried in order
    """

    explicit: dict[str, str] = field(default_factory=dict)
    aliases: dict[str, tuple[str, ...]] = field(
        default_factory=lambda: dict(DEFAULT_ALIASES)
    )

    def __post_init__(self) -> None:
        unknown = set(self.explicit) - set(CANONICAL_FIELDS)
        if unknown:
            raise ValueError(f"Unknown canonical fields in column mapping: {sorted(unknown)}")

    def resolve(self, header: list[str]) -> dict[str, int]:
        """Resolve a header to canonical field -> column index.

        Args:
            header: Column names of the raw input

        Returns:
            Index for every canonical field found in the header

        Raises:
            SchemaError: If a required field cannot be located
        """
        lookup: dict[str, int] = {}
        for idx, name in enumerate(header):
            lookup.setdefault(name.strip().lower(), idx)

        indices: dict[str, int] = {}
        used: set[int] = set()

        # Explicit names take priority over every alias
        for name, column in self.explicit.items():
            idx = lookup.get(column.strip().lower())
            if idx is None:
                if name in REQUIRED_FIELDS:
                    raise SchemaError(
                        f"Column '{column}' mapped to '{name}' not found in header: {header}"
                    )
                logger.warning("Column '%s' mapped to '%s' not found; treating as missing", column, name)
                continue
            indices[name] = idx
            used.add(idx)

        for name in CANONICAL_FIELDS:
            if name in indices or name in self.explicit:
                continue
            for alias in self.aliases.get(name, ()):
                idx = lookup.get(alias.lower())
                if idx is not None and idx not in used:
                    indices[name] = idx
                    used.add(idx)
                    break

        missing = [name for name in REQUIRED_FIELDS if name not in indices]
        if missing:
            raise SchemaError(f"Required columns missing from header: {missing}. Found: {header}")

        logger.debug("Resolved columns: %s", {k: header[v] for k, v in indices.items()})
        return indices

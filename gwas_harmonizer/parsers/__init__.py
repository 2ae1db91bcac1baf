"""Parsers for raw summary statistics and trait legends."""

from gwas_harmonizer.parsers.columns import (
    CANONICAL_FIELDS,
    DEFAULT_ALIASES,
    REQUIRED_FIELDS,
    ColumnMapping,
)
from gwas_harmonizer.parsers.legend import TraitLegend, load_trait_legend
from gwas_harmonizer.parsers.sumstats import (
    SumstatsReader,
    parse_sumstats,
    resolve_delimiter,
    tabulate_sample_sizes,
)

__all__ = [
    "CANONICAL_FIELDS",
    "DEFAULT_ALIASES",
    "REQUIRED_FIELDS",
    "ColumnMapping",
    "TraitLegend",
    "load_trait_legend",
    "SumstatsReader",
    "parse_sumstats",
    "resolve_delimiter",
    "tabulate_sample_sizes",
]

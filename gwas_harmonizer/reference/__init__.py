"""dbSNP reference table reader and join."""

from gwas_harmonizer.reference.dbsnp import DbSNPTable, match_entries, merge_join

__all__ = ["DbSNPTable", "match_entries", "merge_join"]

"""GWAS summary-statistics harmonizer.

Lifts raw GWAS summary statistics to a target genome build, orients alleles
against the reference sequence, annotates variants with dbSNP rsIDs and
allele frequencies, and writes a single harmonized table.
"""

__version__ = "1.0.0"
__author__ = "Data Tecnica International"

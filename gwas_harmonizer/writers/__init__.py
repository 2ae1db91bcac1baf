"""Output writers for the harmonized table, run log and JSON report."""

from gwas_harmonizer.writers.log import print_summary, write_log_file
from gwas_harmonizer.writers.output import HarmonizedFileWriter, output_columns
from gwas_harmonizer.writers.report import ReportWriter

__all__ = [
    "HarmonizedFileWriter",
    "output_columns",
    "ReportWriter",
    "print_summary",
    "write_log_file",
]

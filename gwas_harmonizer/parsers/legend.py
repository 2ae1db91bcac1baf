"""Trait legend loader.

The per-trait formatting legend is maintained as a spreadsheet; this module
reads a local TSV/CSV export of it. Each row describes one trait: which raw
columns hold which fields, the delimiter, the genome build, whether effects
are odds ratios, and constant sample sizes when the file has no N columns.

Legend columns (the spreadsheet's header):
trait_name  file_path  column_delim  hg_version  effect_is_OR  chr  pos  ref  alt
effect_size  standard_error  EAF  pvalue  pvalue_het  N_total_column
N_case_column  N_ctrl_column  N_total  N_case  N_ctrl
"""

import csv
import logging
from dataclasses import dataclass, field
from pathlib import Path

from gwas_harmonizer.exceptions import ConfigurationError
from gwas_harmonizer.io_utils import smart_open
from gwas_harmonizer.utils import is_null, normalize_build, parse_optional_float

logger = logging.getLogger(__name__)

# Legend column -> canonical field
LEGEND_COLUMNS: dict[str, str] = {
    "chr": "chromosome",
    "pos": "position",
    "ref": "ref",
    "alt": "alt",
    "effect_size": "effect_size",
    "standard_error": "standard_error",
    "EAF": "eaf",
    "pvalue": "pvalue",
    "pvalue_het": "pvalue_het",
    "N_total_column": "n_total",
    "N_case_column": "n_case",
    "N_ctrl_column": "n_ctrl",
}

# Legend columns that must hold a column name for every trait
LEGEND_NOT_NA: tuple[str, ...] = ("chr", "pos", "ref", "alt")


@dataclass
class TraitLegend:
    """Formatting instructions for one trait.

    Attributes:
        trait_name: Trait identifier
        column_map: Canonical field -> raw column name
        delimiter: Raw file delimiter ("tab", "comma", "space", ...)
        source_build: Genome build of the raw coordinates
        effect_is_or: Effect column holds odds/hazard ratios
        file_path: Raw file location relative to the raw input directory
        n_total: Constant total sample size
        n_case: Constant number of cases
        n_ctrl: Constant number of controls
    """

    trait_name: str
    column_map: dict[str, str] = field(default_factory=dict)
    delimiter: str = "tab"
    source_build: str = "hg19"
    effect_is_or: bool = False
    file_path: str | None = None
    n_total: float | None = None
    n_case: float | None = None
    n_ctrl: float | None = None

    def resolve_input(self, raw_input_dir: Path) -> Path:
        """Locate the raw input file for this trait.

        Raises:
            ConfigurationError: If the directory or the file does not exist
        """
        if not raw_input_dir.is_dir():
            raise ConfigurationError(f"Raw input directory {raw_input_dir} is not a directory")
        if not self.file_path:
            raise ConfigurationError(f"No file_path in the legend for trait_name={self.trait_name}")

        raw_input_file = raw_input_dir / self.file_path.lstrip("/")
        if not raw_input_file.is_file():
            raise ConfigurationError(f"Raw input file {raw_input_file} does not exist")
        return raw_input_file


def _delimiter_for(sample: str) -> str:
    return "\t" if "\t" in sample else ","


def load_trait_legend(filepath: Path, trait_name: str) -> TraitLegend:
    """Load the legend row for ``trait_name``.

    Args:
        filepath: Legend export (tab- or comma-delimited, may be gzipped)
        trait_name: Value of the ``trait_name`` column to select

    Returns:
        TraitLegend for the trait

    Raises:
        ConfigurationError: If no row or several rows match, a required
            mapping is missing/NA, or a value cannot be interpreted
    """
    if not filepath.exists():
        raise ConfigurationError(f"Legend file not found: {filepath}")

    with smart_open(filepath) as f:
        first = f.readline()
        f.seek(0)
        reader = csv.DictReader(f, delimiter=_delimiter_for(first))
        if reader.fieldnames is None or "trait_name" not in reader.fieldnames:
            raise ConfigurationError(f"Legend file {filepath} has no trait_name column")
        rows = [row for row in reader if (row.get("trait_name") or "").strip() == trait_name]

    if not rows:
        raise ConfigurationError(f"No rows found in the GWAS formatting legend for trait_name={trait_name}")
    if len(rows) > 1:
        raise ConfigurationError(f"Multiple rows found in the GWAS formatting legend for trait_name={trait_name}")

    row = {key: (value or "").strip() for key, value in rows[0].items() if key is not None}

    for col in LEGEND_NOT_NA:
        if is_null(row.get(col, "")):
            raise ConfigurationError(
                f"Column {col} is missing or NA in the GWAS formatting legend for trait_name={trait_name}"
            )

    column_map = {
        canonical: row[legend_col]
        for legend_col, canonical in LEGEND_COLUMNS.items()
        if not is_null(row.get(legend_col, ""))
    }

    hg_version = row.get("hg_version", "") or "hg19"
    source_build = normalize_build(hg_version)
    if source_build is None:
        raise ConfigurationError(f"Unknown hg_version '{hg_version}' for trait_name={trait_name}")

    effect_flag = row.get("effect_is_OR", "N").upper()
    if effect_flag not in {"Y", "N", ""}:
        raise ConfigurationError(f"effect_is_OR must be Y or N for trait_name={trait_name}: {effect_flag}")

    try:
        sizes = {
            name: parse_optional_float(row.get(col, ""))
            for name, col in (("n_total", "N_total"), ("n_case", "N_case"), ("n_ctrl", "N_ctrl"))
        }
    except ValueError as e:
        raise ConfigurationError(f"Invalid sample size in legend for trait_name={trait_name}: {e}") from e

    legend = TraitLegend(
        trait_name=trait_name,
        column_map=column_map,
        delimiter=row.get("column_delim") or "tab",
        source_build=source_build,
        effect_is_or=effect_flag == "Y",
        file_path=row.get("file_path") or None,
        **sizes,
    )
    logger.debug("Loaded legend for %s: %s", trait_name, legend)
    return legend

"""Pytest fixtures for gwas_harmonizer tests.

External tools are replaced by small Python scripts written to tmp_path:

- fake liftOver reads a plain-text "chain" file of
  ``chrom  pos  new_chrom  new_pos`` lines. Positions not listed map to
  themselves; ``UNMAPPED`` sends the interval to the unmapped output,
  ``DROP`` omits it from both outputs, ``FAIL`` makes the call exit 2 and
  repeating a position emits several mappings.
- fake samtools implements ``faidx <fasta> -r regions.txt -o out.fa`` over
  a single-line FASTA, wrapping output sequences at 4 bases.
"""

import sys
from collections.abc import Callable
from pathlib import Path

import pytest

from gwas_harmonizer.config import Config
from gwas_harmonizer.logging_config import reset_logging

FAKE_LIFTOVER = """\
import sys

bed_in, chain, out_bed, unmapped_bed = sys.argv[1:5]
mapping = {}
with open(chain) as f:
    for line in f:
        fields = line.split()
        if fields:
            mapping.setdefault((fields[0], int(fields[1])), []).append(fields[2:])

with open(bed_in) as src, open(out_bed, "w") as out, open(unmapped_bed, "w") as unmapped:
    for line in src:
        chrom, start, end, name = line.split()[:4]
        targets = mapping.get((chrom, int(end)), [[chrom, end]])
        if targets[0][0] == "FAIL":
            sys.stderr.write("ERROR: chain failure\\n")
            sys.exit(2)
        if targets[0][0] == "UNMAPPED":
            unmapped.write("#Deleted in new\\n" + line)
            continue
        if targets[0][0] == "DROP":
            continue
        for new_chrom, new_pos in targets:
            out.write(f"{new_chrom}\\t{int(new_pos) - 1}\\t{new_pos}\\t{name}\\n")
"""

FAKE_SAMTOOLS = """\
import sys

args = sys.argv[1:]
if args[0] != "faidx":
    sys.exit(1)
fasta = args[1]
regions_file = args[args.index("-r") + 1]
out_file = args[args.index("-o") + 1]

contigs = {}
name = None
with open(fasta) as f:
    for line in f:
        line = line.strip()
        if line.startswith(">"):
            name = line[1:].split()[0]
            contigs[name] = []
        elif line:
            contigs[name].append(line)
contigs = {k: "".join(v) for k, v in contigs.items()}

with open(regions_file) as f, open(out_file, "w") as out:
    for line in f:
        region = line.strip()
        if not region:
            continue
        contig, span = region.rsplit(":", 1)
        start, end = (int(x) for x in span.split("-"))
        seq = contigs[contig][start - 1:end].lower()
        out.write(f">{region}\\n")
        for i in range(0, len(seq), 4):
            out.write(seq[i:i + 4] + "\\n")
"""

FAILING_TOOL = """\
import sys

sys.stderr.write("fatal: tool crashed\\n")
sys.exit(1)
"""

SUMSTATS_HEADER = "CHR\tBP\tA2\tA1\tBETA\tSE\tP\tN\n"


def write_executable(path: Path, body: str) -> Path:
    """Write a Python script runnable as an executable."""
    path.write_text(f"#!{sys.executable}\n{body}")
    path.chmod(0o755)
    return path


def write_fasta(path: Path, contigs: dict[str, str]) -> Path:
    """Write a single-line FASTA and its .fai index."""
    offset = 0
    fai_lines = []
    with open(path, "w") as f:
        for name, seq in contigs.items():
            header = f">{name}\n"
            f.write(header)
            f.write(seq + "\n")
            offset += len(header)
            fai_lines.append(f"{name}\t{len(seq)}\t{offset}\t{len(seq)}\t{len(seq) + 1}\n")
            offset += len(seq) + 1
    (path.parent / f"{path.name}.fai").write_text("".join(fai_lines))
    return path


def build_contig(length: int, bases: dict[int, str], background: str = "C") -> str:
    """Contig sequence of ``background`` with ``bases`` set at 1-based positions."""
    seq = [background] * length
    for pos, base in bases.items():
        seq[pos - 1 : pos - 1 + len(base)] = list(base)
    return "".join(seq)


@pytest.fixture(autouse=True)
def _reset_logging():
    """Keep logging handlers from leaking between tests."""
    yield
    reset_logging()


@pytest.fixture
def fake_liftover(tmp_path: Path) -> Path:
    """Path to a fake liftOver executable."""
    return write_executable(tmp_path / "liftOver", FAKE_LIFTOVER)


@pytest.fixture
def fake_samtools(tmp_path: Path) -> Path:
    """Path to a fake samtools executable."""
    return write_executable(tmp_path / "samtools", FAKE_SAMTOOLS)


@pytest.fixture
def failing_tool(tmp_path: Path) -> Path:
    """Path to an executable that always exits 1."""
    return write_executable(tmp_path / "broken-tool", FAILING_TOOL)


@pytest.fixture
def chain_dir(tmp_path: Path) -> Path:
    """Directory with an (identity) hg19ToHg38 chain file."""
    directory = tmp_path / "chains"
    directory.mkdir()
    (directory / "hg19ToHg38.over.chain.gz").write_text("")
    return directory


@pytest.fixture
def reference_fasta(tmp_path: Path) -> Path:
    """Indexed FASTA with known bases on chr1 and chr2.

    chr1: 100000 A, 100100 G, 100200 T, 100300 C, 100400 ACG
    chr2: 500 G
    """
    chr1 = build_contig(
        200_000,
        {100_000: "A", 100_100: "G", 100_200: "T", 100_300: "C", 100_400: "ACG"},
    )
    chr2 = build_contig(1_000, {500: "G"})
    return write_fasta(tmp_path / "ref.fa", {"chr1": chr1, "chr2": chr2})


@pytest.fixture
def dbsnp_file(tmp_path: Path) -> Path:
    """Small dbSNP table sorted by chromosome and position."""
    path = tmp_path / "dbsnp.tsv"
    path.write_text(
        "chr\tpos\tref\talt\trsid\tAF\tgnomAD_AF_EUR\n"
        "1\t100000\tA\tG\trs123\t0.31\t0.29\n"
        "1\t100100\tG\tA\trs456\t0.2\t0.25\n"
        "1\t100400\tACG\tA\trs900\t0.05\t0.04\n"
        "2\t500\tG\tC,T\trs777\t0.1,0.4\t0.12,0.38\n"
    )
    return path


@pytest.fixture
def make_sumstats(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing a raw summary-statistics file from data lines."""

    def _make(lines: list[str], header: str = SUMSTATS_HEADER, name: str = "raw.tsv") -> Path:
        path = tmp_path / name
        path.write_text(header + "".join(f"{line}\n" for line in lines))
        return path

    return _make


@pytest.fixture
def make_config(
    tmp_path: Path,
    fake_liftover: Path,
    fake_samtools: Path,
    reference_fasta: Path,
    dbsnp_file: Path,
    chain_dir: Path,
) -> Callable[..., Config]:
    """Factory for a runnable Config wired to the fake tools."""

    def _make(input_file: Path, **overrides) -> Config:
        out_dir = tmp_path / "out"
        out_dir.mkdir(exist_ok=True)
        options = {
            "input_file": input_file,
            "output_file": out_dir / "trait.tsv.gz",
            "dbsnp_file": dbsnp_file,
            "fasta_ref": reference_fasta,
            "trait_name": "test_trait",
            "source_build": "hg38",
            "target_build": "hg38",
            "liftover_path": fake_liftover,
            "liftover_dir": chain_dir,
            "samtools_path": fake_samtools,
            "max_workers": 2,
        }
        options.update(overrides)
        return Config(**options)

    return _make

"""Tests for output assembly and the writers."""

import gzip
import json
from pathlib import Path

import pytest
from rich.console import Console

from gwas_harmonizer.checks.harmonize import (
    apply_join,
    final_status,
    harmonize_record,
    hg19_coordinates,
    output_sort_key,
)
from gwas_harmonizer.config import Config
from gwas_harmonizer.models import (
    JoinResult,
    RunSummary,
    StatusDetail,
    SummaryStatRecord,
    VariantStatus,
)
from gwas_harmonizer.writers import (
    HarmonizedFileWriter,
    ReportWriter,
    output_columns,
    print_summary,
    write_log_file,
)
from gwas_harmonizer.writers.output import format_row


def record(row_id: int = 1, lifted: bool = True, **kwargs) -> SummaryStatRecord:
    options = {
        "row_id": row_id,
        "chromosome": "chr1",
        "position": 1000,
        "ref": "A",
        "alt": "G",
        "effect_size": 0.05,
        "standard_error": 0.01,
        "pvalue": 1e-8,
        "n_total": 5000.0,
    }
    if lifted:
        options.update(lifted_chromosome="chr1", lifted_position=2000)
    options.update(kwargs)
    return SummaryStatRecord(**options)


MATCH = JoinResult(rsid="rs1", allele_frequency=0.3, population_frequencies=(("EUR", 0.25),))
NO_MATCH = JoinResult(detail=StatusDetail.NOT_IN_DBSNP)


class TestHarmonizeRecord:
    """Test final status and row assembly."""

    def test_resolved(self) -> None:
        row = harmonize_record(apply_join(record(), MATCH))

        assert row.status == VariantStatus.RESOLVED
        assert row.rsid == "rs1"
        assert row.unique_id == "chr1_2000_A_G"
        assert (row.chromosome, row.position) == ("chr1", 2000)
        assert (row.source_chromosome, row.source_position) == ("chr1", 1000)
        assert row.allele_frequency == 0.3

    def test_join_annotates_record(self) -> None:
        joined = apply_join(record(), MATCH)

        assert joined.rsid == "rs1"
        assert joined.allele_frequency == 0.3
        assert joined.population_frequencies == (("EUR", 0.25),)
        assert joined.status == VariantStatus.RESOLVED

    def test_join_leaves_unmapped_record(self) -> None:
        unmapped = record(lifted=False, status=VariantStatus.UNMAPPED_LIFTOVER)

        assert apply_join(unmapped, MATCH) is unmapped

    def test_unjoined_record_written_as_novel(self) -> None:
        row = harmonize_record(record())

        assert row.status == VariantStatus.NOVEL_VARIANT
        assert row.rsid is None

    def test_hg19_coordinates(self) -> None:
        assert hg19_coordinates(record()) == ("chr1", 1000)
        assert hg19_coordinates(record(source_build="hg38", target_build="hg19")) == ("chr1", 2000)
        assert hg19_coordinates(record(source_build="hg38")) == (None, None)
        waypoint = record(source_build="hg18", hg19_chromosome="chr1", hg19_position=1500)
        assert hg19_coordinates(waypoint) == ("chr1", 1500)

    def test_resolved_keeps_orientation_detail(self) -> None:
        status, detail = final_status(record(status_detail=StatusDetail.ALLELE_SWAP), MATCH)

        assert status == VariantStatus.RESOLVED
        assert detail == StatusDetail.ALLELE_SWAP

    def test_novel(self) -> None:
        row = harmonize_record(apply_join(record(), NO_MATCH))

        assert row.status == VariantStatus.NOVEL_VARIANT
        assert row.status_detail == StatusDetail.NOT_IN_DBSNP
        assert row.rsid is None
        assert row.allele_frequency is None

    def test_unmapped_uses_source_coordinates(self) -> None:
        unmapped = record(
            lifted=False,
            status=VariantStatus.UNMAPPED_LIFTOVER,
            status_detail=StatusDetail.LIFTOVER_UNMAPPED,
        )

        row = harmonize_record(unmapped)

        assert row.status == VariantStatus.UNMAPPED_LIFTOVER
        assert row.position is None
        assert row.chromosome == "chr1"
        assert row.unique_id == "chr1_1000_A_G"
        assert row.rsid is None

    def test_mismatch_keeps_status_and_join(self) -> None:
        mismatched = record(status=VariantStatus.ALLELE_MISMATCH, status_detail=StatusDetail.NO_ALLELE_MATCH)

        row = harmonize_record(apply_join(mismatched, MATCH))

        assert row.status == VariantStatus.ALLELE_MISMATCH
        assert row.status_detail == StatusDetail.NO_ALLELE_MATCH
        assert row.rsid == "rs1"

    def test_sort_order(self) -> None:
        rows = [
            harmonize_record(apply_join(record(1, lifted_chromosome="chr10", lifted_position=5), NO_MATCH)),
            harmonize_record(record(2, lifted=False, status=VariantStatus.UNMAPPED_LIFTOVER)),
            harmonize_record(apply_join(record(3, lifted_position=50), NO_MATCH)),
            harmonize_record(apply_join(record(4, lifted_chromosome="chr2", lifted_position=1), NO_MATCH)),
            harmonize_record(apply_join(record(5, lifted_position=50, ref="A", alt="C"), NO_MATCH)),
        ]

        ordered = sorted(rows, key=output_sort_key)

        assert [r.row_id for r in ordered] == [5, 3, 2, 4, 1]


class TestFormatRow:
    """Test output row formatting."""

    def test_columns(self) -> None:
        assert output_columns(["EUR"])[-4:] == ["allele_frequency", "EUR", "status", "status_detail"]
        assert output_columns()[0] == "rsid"

    def test_resolved_row(self) -> None:
        row = format_row(harmonize_record(apply_join(record(), MATCH)), ["EUR", "AFR"])

        assert row == [
            "rs1", "chr1_2000_A_G", "chr1", "2000", "chr1", "1000", "chr1", "1000", "A", "G",
            "0.05", "0.01", "NA", "1e-08", "NA", "5000", "NA", "NA",
            "0.3", "0.25", "NA", "resolved", "NA",
        ]

    def test_unresolved_rsid_empty(self) -> None:
        row = format_row(harmonize_record(record(lifted=False, status=VariantStatus.UNMAPPED_LIFTOVER)))

        assert row[0] == ""
        assert row[3] == "NA"


class TestHarmonizedFileWriter:
    """Test the gzipped table writer."""

    def test_writes_header_and_rows(self, tmp_path: Path) -> None:
        out = tmp_path / "trait.tsv.gz"

        with HarmonizedFileWriter(out, ["EUR"]) as writer:
            writer.write(harmonize_record(apply_join(record(), MATCH)))

        lines = gzip.open(out, "rt").read().splitlines()
        assert lines[0].split("\t") == output_columns(["EUR"])
        assert lines[1].startswith("rs1\tchr1_2000_A_G\t")
        assert writer.written == 1
        assert list(tmp_path.iterdir()) == [out]

    def test_byte_identical(self, tmp_path: Path) -> None:
        rows = [harmonize_record(apply_join(record(i), NO_MATCH)) for i in range(1, 4)]
        outputs = []
        for name in ("a.tsv.gz", "b.tsv.gz"):
            with HarmonizedFileWriter(tmp_path / name) as writer:
                for row in rows:
                    writer.write(row)
            outputs.append((tmp_path / name).read_bytes())

        assert outputs[0] == outputs[1]

    def test_failure_keeps_previous_output(self, tmp_path: Path) -> None:
        out = tmp_path / "trait.tsv.gz"
        out.write_bytes(b"previous")

        with pytest.raises(RuntimeError):
            with HarmonizedFileWriter(out) as writer:
                writer.write(harmonize_record(apply_join(record(), MATCH)))
                raise RuntimeError("interrupted")

        assert out.read_bytes() == b"previous"
        assert list(tmp_path.iterdir()) == [out]

    def test_write_outside_block(self, tmp_path: Path) -> None:
        with pytest.raises(RuntimeError):
            HarmonizedFileWriter(tmp_path / "x.tsv.gz").write(harmonize_record(apply_join(record(), MATCH)))


@pytest.fixture
def summary() -> RunSummary:
    s = RunSummary(input_rows=10, parsed=8, written=8, strand_flips=2)
    s.parse_errors.update({"invalid-position": 2})
    s.status_counts.update({"resolved": 6, "novel-variant": 2})
    s.detail_counts.update({"not-in-dbsnp": 2})
    s.lookup_batches_failed = 1
    s.failures.append("Reference lookup batch 1: samtools faidx failed")
    return s


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(
        input_file=tmp_path / "raw.tsv",
        output_file=tmp_path / "ldl.tsv.gz",
        dbsnp_file=tmp_path / "dbsnp.tsv",
        fasta_ref=tmp_path / "ref.fa",
        trait_name="ldl",
        extra_af_columns=["EUR"],
    )


class TestLogAndReport:
    """Test the LOG file, console summary and JSON report."""

    def test_log_file(self, config: Config, summary: RunSummary) -> None:
        path = write_log_file(config, summary)

        text = path.read_text()
        assert path.name == "LOG-ldl.txt"
        assert "Trait:                       ldl" in text
        assert " Rows excluded 2" in text
        assert "  invalid-position 2" in text
        assert " resolved 6" in text
        assert " unmapped-liftover 0" in text
        assert " Lines scanned 0" in text
        assert "Reference lookup batch 1" in text

    def test_report(self, config: Config, summary: RunSummary) -> None:
        ReportWriter(config).write(config.report_file, summary, [config.output_file])

        report = json.loads(config.report_file.read_text())
        assert report["metadata"]["trait"] == "ldl"
        assert report["metadata"]["builds"] == {"source": "hg19", "target": "hg38"}
        assert report["statistics"]["parsing"]["excluded"] == {"invalid-position": 2}
        assert report["statistics"]["output"]["status"]["resolved"] == 6
        assert report["statistics"]["output"]["status"]["allele-mismatch"] == 0
        assert report["statistics"]["dbsnp"]["lines_scanned"] == 0
        assert report["failures"] == ["Reference lookup batch 1: samtools faidx failed"]
        assert report["output_files"] == [str(config.output_file)]
        assert [p.name for p in config.report_file.parent.iterdir() if p.suffix == ".tmp"] == []

    def test_report_failure_keeps_previous(
        self, config: Config, summary: RunSummary, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        config.report_file.write_text("previous")

        def fail(*args, **kwargs):
            raise TypeError("not serializable")

        monkeypatch.setattr("gwas_harmonizer.writers.report.json.dump", fail)

        with pytest.raises(TypeError):
            ReportWriter(config).write(config.report_file, summary, [config.output_file])

        assert config.report_file.read_text() == "previous"
        assert [p.name for p in config.report_file.parent.iterdir() if p.suffix == ".tmp"] == []

    def test_print_summary(self, summary: RunSummary) -> None:
        console = Console(record=True, width=100)

        print_summary(summary, console)

        text = console.export_text()
        assert "Harmonization summary" in text
        assert "novel-variant" in text
        assert "Failed batches" in text

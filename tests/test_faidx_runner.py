"""Tests for faidx_runner module."""

from pathlib import Path

import pytest
from conftest import write_fasta

from gwas_harmonizer.exceptions import ConfigurationError
from gwas_harmonizer.faidx_runner import (
    FastaIndex,
    ReferenceLookup,
    make_lookup_batches,
    parse_faidx_output,
    query_for,
)
from gwas_harmonizer.models import RegionQuery, RunSummary, SummaryStatRecord


class TestFastaIndex:
    """Test .fai loading and contig naming."""

    def test_load(self, reference_fasta: Path) -> None:
        index = FastaIndex.load(reference_fasta)

        assert index.lengths == {"chr1": 200_000, "chr2": 1_000}
        assert index.uses_chr_prefix is True

    def test_missing_index(self, tmp_path: Path) -> None:
        fasta = tmp_path / "plain.fa"
        fasta.write_text(">1\nACGT\n")

        with pytest.raises(ConfigurationError, match="samtools faidx"):
            FastaIndex.load(fasta)

    def test_malformed_index(self, tmp_path: Path) -> None:
        fasta = tmp_path / "bad.fa"
        fasta.write_text(">1\nACGT\n")
        (tmp_path / "bad.fa.fai").write_text("1\tfour\t3\t4\t5\n")

        with pytest.raises(ConfigurationError, match="Malformed"):
            FastaIndex.load(fasta)

    def test_bare_contig_names(self, tmp_path: Path) -> None:
        index = FastaIndex(tmp_path / "ref.fa", {"1": 1000, "X": 500, "MT": 16569})

        assert index.contig_for("chr1") == "1"
        assert index.contig_for("chrX") == "X"
        assert index.contig_for("chrM") == "MT"
        assert index.contig_for("chr7") is None

    def test_region_bounds(self, tmp_path: Path) -> None:
        index = FastaIndex(tmp_path / "ref.fa", {"chr1": 1000})

        assert index.region_for(RegionQuery("chr1", 999, 1000)) == "chr1:999-1000"
        assert index.region_for(RegionQuery("chr1", 1000, 1001)) is None
        assert index.region_for(RegionQuery("chr2", 1, 1)) is None


class TestQueries:
    """Test query construction and batching."""

    def test_query_spans_longer_allele(self) -> None:
        record = SummaryStatRecord(
            row_id=1, chromosome="chr1", position=10, ref="A", alt="ACG", effect_size=0.1,
            lifted_chromosome="chr1", lifted_position=100,
        )

        assert query_for(record) == RegionQuery("chr1", 100, 102)

    def test_unlifted_record_has_no_query(self) -> None:
        record = SummaryStatRecord(row_id=1, chromosome="chr1", position=10, ref="A", alt="G", effect_size=0.1)

        assert query_for(record) is None

    def test_batches_deduplicated_and_sorted(self) -> None:
        queries = [
            RegionQuery("chr2", 5, 5),
            RegionQuery("chr1", 9, 9),
            RegionQuery("chr2", 5, 5),
            RegionQuery("chr1", 3, 3),
        ]

        batches = make_lookup_batches(queries, 2)

        assert [b.queries for b in batches] == [
            (RegionQuery("chr1", 3, 3), RegionQuery("chr1", 9, 9)),
            (RegionQuery("chr2", 5, 5),),
        ]

    def test_parse_wrapped_output(self, tmp_path: Path) -> None:
        out = tmp_path / "out.fa"
        out.write_text(">chr1:1-6\nacgt\nac\n>chr2:5-5\nN\n")

        assert parse_faidx_output(out) == {"chr1:1-6": "ACGTAC", "chr2:5-5": "N"}


class TestReferenceLookup:
    """Test batched lookups through the fake samtools."""

    def test_fetch(self, fake_samtools: Path, reference_fasta: Path) -> None:
        index = FastaIndex.load(reference_fasta)
        lookup = ReferenceLookup(fake_samtools, index, chunk_size=2, max_workers=2)
        summary = RunSummary()
        queries = [
            RegionQuery("chr1", 100_000, 100_000),
            RegionQuery("chr1", 100_400, 100_402),
            RegionQuery("chr2", 500, 500),
            RegionQuery("chr2", 999, 1_001),
            RegionQuery("chr9", 1, 1),
        ]

        result = lookup.fetch(queries, summary)

        assert result.failed == set()
        assert result.sequences == {
            RegionQuery("chr1", 100_000, 100_000): "A",
            RegionQuery("chr1", 100_400, 100_402): "ACG",
            RegionQuery("chr2", 500, 500): "G",
            RegionQuery("chr2", 999, 1_001): None,
            RegionQuery("chr9", 1, 1): None,
        }
        assert summary.lookup_batches == 3
        assert summary.lookup_queries == 5
        assert summary.lookup_batches_failed == 0

    def test_all_n_sequence_is_missing(self, fake_samtools: Path, tmp_path: Path) -> None:
        fasta = write_fasta(tmp_path / "gap.fa", {"chr1": "NNNNACGT"})
        lookup = ReferenceLookup(fake_samtools, FastaIndex.load(fasta))

        result = lookup.fetch([RegionQuery("chr1", 2, 2), RegionQuery("chr1", 5, 5)], RunSummary())

        assert result.sequences[RegionQuery("chr1", 2, 2)] is None
        assert result.sequences[RegionQuery("chr1", 5, 5)] == "A"

    def test_failed_batch(self, failing_tool: Path, reference_fasta: Path) -> None:
        lookup = ReferenceLookup(failing_tool, FastaIndex.load(reference_fasta))
        summary = RunSummary()
        query = RegionQuery("chr1", 100_000, 100_000)

        result = lookup.fetch([query], summary)

        assert result.failed == {query}
        assert summary.lookup_batches_failed == 1
        assert "Reference lookup batch 1" in summary.failures[0]
        assert "tool crashed" in summary.failures[0]

    def test_missing_executable(self, reference_fasta: Path) -> None:
        lookup = ReferenceLookup(None, FastaIndex.load(reference_fasta))
        summary = RunSummary()

        result = lookup.fetch([RegionQuery("chr1", 1, 1)], summary)

        assert result.failed == {RegionQuery("chr1", 1, 1)}
        assert "samtools executable not found" in summary.failures[0]

    def test_out_of_range_only_skips_samtools(self, reference_fasta: Path) -> None:
        """A batch with nothing to fetch never needs the executable."""
        lookup = ReferenceLookup(None, FastaIndex.load(reference_fasta))

        result = lookup.fetch([RegionQuery("chr9", 1, 1)], RunSummary())

        assert result.failed == set()
        assert result.sequences == {RegionQuery("chr9", 1, 1): None}

    def test_temp_dirs_removed(self, fake_samtools: Path, reference_fasta: Path, tmp_path: Path) -> None:
        work_dir = tmp_path / "work"
        work_dir.mkdir()
        lookup = ReferenceLookup(fake_samtools, FastaIndex.load(reference_fasta), work_dir=work_dir)

        lookup.fetch([RegionQuery("chr1", 100_000, 100_000)], RunSummary())

        assert list(work_dir.iterdir()) == []

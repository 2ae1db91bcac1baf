"""File helpers: transparent gzip reading and atomic writes.

Compression is detected from magic bytes rather than the extension, so the
raw input, the legend and the dbSNP table may each be plain, gzip or bgzip
(which is gzip-compatible).

Example:
    with smart_open(Path("dbsnp.tsv.gz")) as f:
        for line in f:
            process(line)
"""

import gzip
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, TextIO

# First two bytes of every gzip member
GZIP_MAGIC = b"\x1f\x8b"


def is_gzipped(filepath: Path) -> bool:
    """Detect if a file is gzip-compressed.

    Files too short to carry the magic bytes are judged by extension.

    Example:
        >>> is_gzipped(Path("dbsnp.tsv.gz"))
        True
    """
    with open(filepath, "rb") as f:
        magic = f.read(2)
    if len(magic) == 2:
        return magic == GZIP_MAGIC
    return filepath.suffix in {".gz", ".bgz"}


@contextmanager
def smart_open(filepath: Path) -> Iterator[TextIO]:
    """Open a (possibly gzipped) file for reading as UTF-8 text."""
    if is_gzipped(filepath):
        f = gzip.open(filepath, "rt", encoding="utf-8")
    else:
        f = open(filepath, encoding="utf-8")
    try:
        yield f
    finally:
        f.close()


@contextmanager
def atomic_write_path(output_path: Path, suffix: str = ".tmp") -> Iterator[Path]:
    """Yield a temporary path that replaces ``output_path`` on success.

    The temporary file lives in the destination directory so the final
    rename is atomic. It is removed if the body raises.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=output_path.parent, suffix=suffix)
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        yield tmp_path
        tmp_path.replace(output_path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()

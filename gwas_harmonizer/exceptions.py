"""Exceptions raised by the GWAS harmonizer.

Fatal errors (``ConfigurationError``, ``SchemaError``) stop a run before any
batch is dispatched. The others are recoverable: they degrade the affected
rows, batches or reference lines and are counted in the run summary.
"""


class HarmonizerError(Exception):
    """Base exception for harmonizer errors."""
    pass


class ConfigurationError(HarmonizerError):
    """Raised for missing binaries, reference files or unusable input."""
    pass


class SchemaError(HarmonizerError):
    """Raised when a required column is missing from an input header."""
    pass


class ParseError(HarmonizerError):
    """Raised for a single input row that cannot be parsed.

    Attributes:
        reason: Short category used to count excluded rows
        line_num: 1-based line number in the input file
    """

    def __init__(self, reason: str, message: str, line_num: int | None = None) -> None:
        super().__init__(message)
        self.reason = reason
        self.line_num = line_num


class LiftoverBatchError(HarmonizerError):
    """Raised when the liftover tool fails for a whole batch.

    ``batch_id`` is None when the error concerns the run as a whole
    (every batch failed and the run was configured to abort).
    """

    def __init__(self, batch_id: int | None, message: str) -> None:
        prefix = f"Liftover batch {batch_id}" if batch_id is not None else "Liftover"
        super().__init__(f"{prefix}: {message}")
        self.batch_id = batch_id


class LookupBatchError(HarmonizerError):
    """Raised when the sequence-query tool fails for a whole batch."""

    def __init__(self, batch_id: int, message: str) -> None:
        super().__init__(f"Reference lookup batch {batch_id}: {message}")
        self.batch_id = batch_id


class ReferenceTableError(HarmonizerError):
    """Raised for a malformed or out-of-order dbSNP table line."""

    def __init__(self, line_num: int, message: str) -> None:
        super().__init__(f"dbSNP line {line_num}: {message}")
        self.line_num = line_num

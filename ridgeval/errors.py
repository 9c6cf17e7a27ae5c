"""Exception hierarchy for the ridgeval harness."""


class HarnessError(Exception):
    """Base class for all harness errors."""


class ParseError(HarnessError, ValueError):
    """Raised for a malformed manifest, dataset or configuration file."""

    def __init__(self, message: str, path=None, line_number=None):
        self.path = path
        self.line_number = line_number
        location = ""
        if path is not None:
            location = f"{path}"
            if line_number is not None:
                location += f":{line_number}"
            location += ": "
        super().__init__(f"{location}{message}")


class HarnessIOError(HarnessError, OSError):
    """Raised when opening, reading or writing a file fails."""


class BudgetError(HarnessError):
    """Raised when the declared storage budget cannot hold the archive."""

    def __init__(self, archive_bytes: int, max_size: int, margin: float):
        self.archive_bytes = archive_bytes
        self.max_size = max_size
        self.margin = margin
        super().__init__(
            f"Given {archive_bytes} bytes of templates, {max_size} is not enough "
            f"storage space for the reference database. Estimated size required "
            f"is {margin}x the size of templates."
        )


class InvalidArgumentError(HarnessError, ValueError):
    """Raised on precondition violations (sharding, splitting, CLI values)."""


class ImplementationError(HarnessError):
    """Raised or recorded when the pluggable implementation misbehaves."""


class OrchestrationError(HarnessError):
    """Raised when worker processes cannot be spawned or reaped."""

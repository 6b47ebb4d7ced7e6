"""
Custom exceptions used throughout the morphoclone package.
"""


class MorphoCloneException(Exception):
    """Exception class specific to the morphoclone module.

    Args:
        msg (str): Optional message for the exception.
    """

    def __init__(self, msg=""):
        super().__init__(msg)
        self._msg = msg


class ConfigurationError(MorphoCloneException):
    """The participating/ignored table configuration is cyclic or inconsistent."""


class MissingMappingError(MorphoCloneException):
    """A row references a participating table whose row was not cloned.

    Args:
        table (str): Name of the referenced table.
        row_id: Source identifier that has no clone.
    """

    def __init__(self, table: str, row_id):
        super().__init__(f"The {row_id} for {table} was not cloned")
        self.table = table
        self.row_id = row_id


class DuplicateMappingError(MorphoCloneException):
    """A clone was recorded twice for the same source row."""

    def __init__(self, table: str, row_id):
        super().__init__(f"The {row_id} for {table} was already cloned")
        self.table = table
        self.row_id = row_id


class BlobCopyError(MorphoCloneException):
    """Copying a file or remote object failed."""


class DuplicationError(MorphoCloneException):
    """A duplication run failed. Wraps the first underlying failure.

    Args:
        msg (str): Description of the failed run.
        cause (Exception): The exception that aborted the run.
    """

    def __init__(self, msg="", cause: Exception | None = None):
        super().__init__(msg)
        self.cause = cause

__all__ = [
    "ShelfError",
    "NetworkError",
    "ArchiveFormatError",
    "ValidationError",
    "FilesystemError",
    "ConsistencyError",
]


class ShelfError(Exception):
    """
    Base class of errors raised while synchronizing modules.
    """


class NetworkError(ShelfError):
    """
    Raised when a manifest, catalog or archive could not be fetched.
    """


class ArchiveFormatError(ShelfError):
    """
    Raised when a downloaded archive is not a readable zip file or contains
    entries which would escape the target folder.
    """


class ValidationError(ShelfError):
    """
    Raised when a fetched manifest or catalog has the wrong shape.

    Examples:

    - Manifest is missing `zip` or has a non-string `version`
    - Catalog maps a module name to something other than a URL string
    """

    errors: list[str]

    def __init__(self, errors: list[str]):
        self.errors = errors
        errors_str = "\n".join([e for e in errors])
        super().__init__(f"Errors found during validation: {errors_str}")


class FilesystemError(ShelfError):
    """
    Raised when a filesystem operation on a module folder fails.
    """


class ConsistencyError(ShelfError):
    """
    Raised when an operation would violate an invariant of the local
    state, e.g. pruning would empty a module folder or a canonical manifest
    declares a name other than the one it's registered under.
    """

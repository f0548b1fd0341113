"""
Package processing errors

Every failure the engine knows how to describe carries an ``error_type``
matching the name reported to callers in ``errorType``.
"""

from typing import Optional


class PackageError(Exception):
    """Base class for expected package processing failures"""

    error_type = "PackageError"

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.path = path


class MissingManifest(PackageError):
    """No imsmanifest.xml anywhere in the archive"""

    error_type = "MissingManifest"


class MalformedManifest(PackageError):
    """The manifest exists but is not well-formed markup"""

    error_type = "MalformedManifest"


class MissingArchiveInput(PackageError):
    """The archive or folder to process does not exist or is empty"""

    error_type = "MissingArchiveInput"


class UnresolvableLaunchFile(PackageError):
    """No HTML document exists anywhere in the package tree"""

    error_type = "UnresolvableLaunchFile"


class FilesystemFailure(PackageError):
    """Extraction, repacking or write errors"""

    error_type = "FilesystemFailure"


class InvalidSessionId(PackageError):
    error_type = "InvalidSessionId"


def error_type_of(exc: BaseException) -> str:
    """Return the taxonomy name for an exception"""
    if isinstance(exc, PackageError):
        return exc.error_type
    if isinstance(exc, OSError):
        return FilesystemFailure.error_type
    return type(exc).__name__

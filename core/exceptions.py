"""
Centralized exception hierarchy for domain-specific errors.

This module provides custom exception classes that represent specific
error conditions in the application, enabling better error handling and
client-side error recovery.
"""


class CoverageServiceError(Exception):
    """Base exception for all application-specific errors."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(CoverageServiceError):
    """Exception raised when data validation fails."""


class ExternalServiceError(CoverageServiceError):
    """Exception raised when service calls fail."""


class RateLimitError(ExternalServiceError):
    """Exception raised when rate limits are exceeded."""


class ResourceNotFoundError(CoverageServiceError):
    """Exception raised when a requested resource is not found."""


class DuplicateResourceError(CoverageServiceError):
    """Exception raised when attempting to create a duplicate resource."""


class StorageError(CoverageServiceError):
    """Exception raised when a database write or read fails."""


# ---------------------------------------------------------------------------
# Coverage file errors
# ---------------------------------------------------------------------------


class CoverageFileError(ValidationError):
    """
    An uploaded coverage map could not be turned into regions.

    ``errors`` lists every problem found so the file can be fixed in one
    pass; ``code`` is a stable machine-readable identifier.
    """

    code = "invalid_coverage_file"

    def __init__(self, errors: list[str] | str, details: dict | None = None) -> None:
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        merged = {"code": self.code, "errors": self.errors}
        merged.update(details or {})
        super().__init__("; ".join(self.errors) or self.code, merged)


class InvalidUploadError(CoverageFileError):
    code = "invalid_upload"


class EmptyInputError(CoverageFileError):
    code = "empty_input"


class MalformedArchiveError(CoverageFileError):
    code = "malformed_archive"


class MalformedXMLError(CoverageFileError):
    code = "malformed_xml"


class NoValidRegionsError(CoverageFileError):
    code = "no_valid_regions"


class EmptyGeometryError(CoverageFileError):
    code = "empty_geometry"


# ---------------------------------------------------------------------------
# Geocoding errors
# ---------------------------------------------------------------------------


class InvalidPostalCodeError(ValidationError):
    """Postal code does not have the expected number of digits."""


class PostalCodeNotFoundError(ResourceNotFoundError):
    """The postal-code lookup reports that the code does not exist."""


class OutOfBoundsError(ValidationError):
    """Coordinates fall outside the national bounding box."""


class UnresolvedProviderError(CoverageFileError):
    """No feature group of an upload could be assigned to a provider."""

    code = "unresolved_provider"

# listing_tracker/core/exceptions.py

"""
Typed failure conditions for the extraction and ingestion pipeline.

Every failure in the core is raised as one of these; none is retried or
swallowed internally.
"""

from typing import Any, Dict, Optional


class ListingTrackerError(Exception):
    """Base exception for all listing tracker errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize the error.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            details: Additional error details
        """
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


# --- Extraction -------------------------------------------------------------


class StructuredDataNotFound(ListingTrackerError):
    """Raised when the token stream ends without a structured-data block."""

    def __init__(self, bytes_read: int = 0, scripts_seen: int = 0):
        super().__init__(
            message="Product JSON-LD not found",
            error_code="STRUCTURED_DATA_NOT_FOUND",
            details={"bytes_read": bytes_read, "scripts_seen": scripts_seen},
        )


class MalformedStructuredData(ListingTrackerError):
    """Raised when a structured-data block is not a valid product object."""

    def __init__(
        self,
        message: str = "Failed to parse product info",
        original_error: Optional[Exception] = None,
    ):
        details = {"original_error": str(original_error)} if original_error else {}
        super().__init__(
            message=message,
            error_code="MALFORMED_STRUCTURED_DATA",
            details=details,
        )


# --- Fetching ---------------------------------------------------------------


class ListingDeactivated(ListingTrackerError):
    """Raised when the marketplace answers 410 Gone for a listing."""

    def __init__(self, url: str):
        super().__init__(
            message=f"Listing is no longer active: {url}",
            error_code="LISTING_DEACTIVATED",
            details={"url": url},
        )


class TransportError(ListingTrackerError):
    """Raised on unexpected HTTP status or transport failure."""

    def __init__(
        self,
        message: str = "Request failed",
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {}
        if url:
            details["url"] = url
        if status_code is not None:
            details["status_code"] = status_code
        if original_error:
            details["original_error"] = str(original_error)
        self.status_code = status_code
        super().__init__(
            message=message,
            error_code="TRANSPORT_ERROR",
            details=details,
        )


class URLMismatch(ListingTrackerError):
    """Raised when the page describes a different URL than the one requested."""

    def __init__(self, requested_url: str, extracted_url: str):
        super().__init__(
            message=(
                f"Fetched product URL ({extracted_url or '<empty>'}) does not "
                f"match requested URL ({requested_url})"
            ),
            error_code="URL_MISMATCH",
            details={"requested_url": requested_url, "extracted_url": extracted_url},
        )


# --- Storage ----------------------------------------------------------------


class AlreadyTracked(ListingTrackerError):
    """Raised when an owner already tracks the given URL."""

    def __init__(self, owner_id: str, url: str):
        super().__init__(
            message=f"Listing is already tracked: {url}",
            error_code="ALREADY_TRACKED",
            details={"owner_id": owner_id, "url": url},
        )


class VersionConflict(ListingTrackerError):
    """Raised when a concurrent writer already claimed the computed version."""

    def __init__(self, listing_id: str, version: int):
        super().__init__(
            message=f"Version {version} of listing {listing_id} already exists",
            error_code="VERSION_CONFLICT",
            details={"listing_id": listing_id, "version": version},
        )


class ResourceNotFoundError(ListingTrackerError):
    """Raised when a requested row does not exist."""

    def __init__(self, resource_type: str, resource_id: Optional[str] = None):
        message = f"{resource_type} not found"
        if resource_id:
            message += f": {resource_id}"
        super().__init__(
            message=message,
            error_code="RESOURCE_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class ListingNotFound(ResourceNotFoundError):
    """Raised when a listing id is unknown (or not owned by the caller)."""

    def __init__(self, listing_id: Optional[str] = None):
        super().__init__("Listing", listing_id)


class PrincipalNotFound(ResourceNotFoundError):
    """Raised when no principal matches the given credentials."""

    def __init__(self, username: Optional[str] = None):
        super().__init__("Principal", username)


class PrincipalAlreadyExists(ListingTrackerError):
    """Raised when creating a principal with a taken username."""

    def __init__(self, username: str):
        super().__init__(
            message=f"Principal already exists: {username}",
            error_code="PRINCIPAL_ALREADY_EXISTS",
            details={"username": username},
        )


class OperationCancelled(ListingTrackerError):
    """Raised when a deadline expires or is cancelled mid-operation."""

    def __init__(self, operation: str = "operation"):
        super().__init__(
            message=f"{operation} cancelled before completion",
            error_code="OPERATION_CANCELLED",
            details={"operation": operation},
        )


class StoreError(ListingTrackerError):
    """Raised when a database operation fails for any other reason."""

    def __init__(
        self,
        message: str = "Database operation failed",
        original_error: Optional[Exception] = None,
    ):
        details = {"original_error": str(original_error)} if original_error else {}
        super().__init__(
            message=message,
            error_code="STORE_ERROR",
            details=details,
        )

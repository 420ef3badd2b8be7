"""
Domain errors raised by the patrol services.

Each error carries the HTTP status used when it reaches the API layer and a
message that is safe to show to the guard or supervisor.
"""


class PatrolError(Exception):
    status_code = 400
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ScanValidationError(PatrolError):
    """Malformed QR payload, unknown site, missing checkpoint, or geofence rejection."""
    status_code = 400


class StoreBusyError(PatrolError):
    """The store-wide lock could not be acquired within the bounded wait."""
    status_code = 503
    retryable = True

    def __init__(self, message: str = "System busy, please try again"):
        super().__init__(message)


class TableNotFoundError(PatrolError):
    status_code = 500

    def __init__(self, table: str):
        super().__init__(f"Table not found: {table}")
        self.table = table


class SiteDirectoryUnavailable(PatrolError):
    status_code = 503

    def __init__(self, message: str = "Site directory is unavailable"):
        super().__init__(message)


class SiteNotFoundError(PatrolError):
    status_code = 404

    def __init__(self, reference: str):
        super().__init__(f"Site not found: {reference}")
        self.reference = reference


class BlobUploadError(PatrolError):
    status_code = 502

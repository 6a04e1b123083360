"""Custom exception classes for Fluxfolio."""


class FluxfolioError(Exception):
    """Base exception for Fluxfolio."""

    def __init__(self, code: str, message: str, details=None, status_code: int = 500):
        self.code = code
        self.message = message
        self.details = details
        self.status_code = status_code
        super().__init__(message)


class ValidationError(FluxfolioError):
    """Missing or malformed request parameters."""

    def __init__(self, message: str, details=None):
        super().__init__("VALIDATION_ERROR", message, details, status_code=400)


class NotFoundError(FluxfolioError):
    """Resource not found."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            "NOT_FOUND",
            f"{resource} '{resource_id}' not found",
            status_code=404,
        )


class AuthenticationError(FluxfolioError):
    """Session token missing, unknown or expired."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__("UNAUTHORIZED", message, status_code=401)


class ConflictError(FluxfolioError):
    """Resource state conflict."""

    def __init__(self, message: str):
        super().__init__("CONFLICT", message, status_code=409)


class StorageError(FluxfolioError):
    """Backing store unreachable or write rejected."""

    def __init__(self, message: str, details=None):
        super().__init__("STORAGE_ERROR", message, details, status_code=503)


class ExternalCallError(FluxfolioError):
    """A contract call or remote service failed mid-pipeline."""

    def __init__(self, message: str, details=None, code: str = "EXTERNAL_CALL_ERROR"):
        super().__init__(code, message, details, status_code=502)


class RelayUnavailableError(ExternalCallError):
    """Settlement relay could not be reached or returned a JSON-RPC error."""

    def __init__(self, message: str, details=None):
        super().__init__(message, details, code="RELAY_UNAVAILABLE")


class NonceExhaustedError(FluxfolioError):
    """No unused nonce could be drawn within the attempt budget."""

    def __init__(self, attempts: int):
        super().__init__(
            "NONCE_EXHAUSTED",
            f"No unused nonce found after {attempts} attempts",
            {"attempts": attempts},
        )


class SigningError(FluxfolioError):
    """Remote signer timed out or returned malformed signature components."""

    def __init__(self, message: str, details=None):
        super().__init__("SIGNING_ERROR", message, details, status_code=502)


class InvalidKeyError(FluxfolioError):
    """Local key material could not be parsed."""

    def __init__(self, message: str):
        super().__init__("INVALID_KEY", message, status_code=400)


class FinalizationTimeoutError(FluxfolioError):
    """Intent did not reach a terminal relay status in time."""

    def __init__(self, intent_hash: str, attempts: int, last_status: str | None = None):
        super().__init__(
            "FINALIZATION_TIMEOUT",
            f"Intent {intent_hash} not settled after {attempts} status checks",
            {"intent_hash": intent_hash, "attempts": attempts, "last_status": last_status},
            status_code=504,
        )


class JobCancelledError(FluxfolioError):
    """Cancellation was requested for the running job."""

    def __init__(self, ref: str):
        super().__init__("JOB_CANCELLED", "Cancelled", {"ref": ref}, status_code=409)

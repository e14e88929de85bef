"""Exception hierarchy for the conversion pipeline."""


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.original_error = original_error


class NotFoundError(AppError):
    """Raised when a document, version or source file is missing."""
    pass


class TransientExternalError(AppError):
    """Raised when an external call fails in a way that may succeed on retry."""
    pass


class PermanentExternalError(AppError):
    """Raised when an external call fails in a way retrying cannot fix."""
    pass


class ConversionFailedError(PermanentExternalError):
    """Raised when a conversion is rejected or its retries are exhausted."""

    def __init__(self, message: str, attempts: int = 0, original_error: Exception = None):
        super().__init__(message, original_error=original_error)
        self.attempts = attempts


class LocalProcessingError(AppError):
    """Raised when a local library or tool fails to process a file."""
    pass


class RasterizationError(LocalProcessingError):
    """Raised when a PDF page cannot be rendered or persisted."""
    pass


class TranscodeError(LocalProcessingError):
    """Raised when ffprobe or ffmpeg fails."""
    pass


class StorageError(AppError):
    """Raised when an object storage operation fails."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class ValidationError(AppError):
    """Raised when stage input is invalid."""
    pass


class ConflictError(AppError):
    """Raised when a write loses a uniqueness race."""
    pass

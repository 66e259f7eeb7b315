"""Error types for the upload -> detection -> annotation pipeline."""


class DetectionError(Exception):
    """Base class for pipeline errors."""


class UploadRejected(DetectionError):
    """Client input that fails validation. Surfaced as a 4xx response."""

    status_code = 400


class InvalidFormat(UploadRejected):
    status_code = 400

    def __init__(self, message: str = "Please upload a valid image file (JPG, PNG, WEBP)"):
        super().__init__(message)


class TooLarge(UploadRejected):
    status_code = 413

    def __init__(self, message: str = "File size must be less than 10MB"):
        super().__init__(message)


class DetectionServiceError(DetectionError):
    """External detector failed. Always recovered by the fallback."""


class AnnotationError(DetectionError):
    """Drawing boxes onto the image failed. Recovered by omitting the image."""


class ProcessingError(DetectionError):
    """Unrecoverable failure, reported as HTTP 500."""

    def __init__(self, message: str = "Failed to process image"):
        super().__init__(message)

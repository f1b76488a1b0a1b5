class PhotoIngestError(Exception):
    """Base error; ``status_code`` is what the HTTP layer answers with."""

    status_code = 500

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__


# --- client errors ---

class InvalidRequestError(PhotoIngestError):
    """Invalid request"""
    status_code = 400


class MissingFieldError(InvalidRequestError):
    """Missing multipart field"""

    def __init__(self, field):
        super().__init__(f"Missing multipart field: {field}")
        self.field = field


class InvalidImageError(PhotoIngestError):
    """Image could not be decoded"""
    status_code = 400


class DuplicateImageError(PhotoIngestError):
    """Image already uploaded"""
    status_code = 409


class UnauthorizedError(PhotoIngestError):
    """Not authenticated"""
    status_code = 401


class ImageNotFoundError(PhotoIngestError):
    """Image not found"""
    status_code = 404


# --- external collaborator errors ---

class StorageError(PhotoIngestError):
    """Object store request failed"""
    status_code = 502


class ObjectNotFoundError(StorageError):
    """Object does not exist"""
    status_code = 404


class MetadataStoreError(PhotoIngestError):
    """Database operation failed"""
    status_code = 500


class QueueClosedError(PhotoIngestError):
    """Job queue is closed"""
    status_code = 503

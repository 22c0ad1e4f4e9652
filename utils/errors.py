from http import HTTPStatus
from typing import Optional


class MergeError(Exception):
    """
    Base class for every error the merge pipeline reports to a caller.

    Each subclass carries a stable ``code``, the HTTP status it maps to and a
    short default message that is safe to show to a client.
    """
    code = "MERGE_ERROR"
    status_code = HTTPStatus.INTERNAL_SERVER_ERROR
    default_message = "Merge failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NoFilesProvided(MergeError):
    code = "NO_FILES_PROVIDED"
    status_code = HTTPStatus.BAD_REQUEST
    default_message = "No files uploaded"


class UploadTooLarge(MergeError):
    code = "UPLOAD_TOO_LARGE"
    status_code = HTTPStatus.REQUEST_ENTITY_TOO_LARGE
    default_message = "Uploaded file exceeds the maximum size"


class ExtractionError(MergeError):
    code = "EXTRACTION_ERROR"
    status_code = HTTPStatus.UNPROCESSABLE_ENTITY
    default_message = "Archive could not be extracted"


class EmptyResult(MergeError):
    code = "EMPTY_RESULT"
    status_code = HTTPStatus.BAD_REQUEST
    default_message = "No data found in uploaded files"


class SerializationError(MergeError):
    code = "SERIALIZATION_ERROR"
    status_code = HTTPStatus.UNPROCESSABLE_ENTITY
    default_message = "Merged data exceeds spreadsheet limits"


class UnexpectedError(MergeError):
    # Never carries internal detail; the cause is logged server-side.
    code = "UNEXPECTED_ERROR"
    status_code = HTTPStatus.INTERNAL_SERVER_ERROR
    default_message = "Server error"

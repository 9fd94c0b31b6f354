class FileShareError(Exception):
    """Base for every failure a route turns into an error response."""

    status_code = 500
    code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequest(FileShareError):
    status_code = 400
    code = "bad_request"


class Unauthorized(FileShareError):
    status_code = 401
    code = "unauthorized"

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class ObjectNotFound(FileShareError):
    status_code = 404
    code = "not_found"


class FileTooLarge(FileShareError):
    status_code = 413
    code = "payload_too_large"

    def __init__(self, filename: str, limit_bytes: int):
        super().__init__(f'File "{filename}" exceeds {_format_limit(limit_bytes)} limit.')
        self.filename = filename
        self.limit_bytes = limit_bytes


class MalformedUpload(FileShareError):
    code = "parsing_error"

    def __init__(self, message: str = "Parsing error"):
        super().__init__(message)


class UploadFailed(FileShareError):
    code = "upload_failed"

    def __init__(self, message: str = "Upload processing failed"):
        super().__init__(message)


class StorageError(FileShareError):
    code = "storage_error"


class EmailDeliveryError(Exception):
    """Email provider rejected or never received the message."""


def _format_limit(limit_bytes: int) -> str:
    mib = 1024 * 1024
    if limit_bytes >= mib and limit_bytes % mib == 0:
        return f"{limit_bytes // mib}MB"
    return f"{limit_bytes} bytes"

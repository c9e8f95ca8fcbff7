"""
Error taxonomy shared by the storage core and the action layer.

Every error carries a message code (the key the front end translates) and
the arguments interpolated into it.
"""
from typing import List, Optional


class FileManagerError(Exception):
    code = "ERROR"
    http_status = 400

    def __init__(self, code: Optional[str] = None, arguments: Optional[List[str]] = None):
        self.code = code or self.code
        self.arguments = list(arguments or [])
        msg = self.code if not self.arguments else f"{self.code}: {', '.join(str(a) for a in self.arguments)}"
        super().__init__(msg)

    def to_json_api(self) -> dict:
        return {
            "id": "server",
            "code": str(self.http_status),
            "title": self.code,
            "meta": {"arguments": self.arguments},
        }


class PathNotFound(FileManagerError):
    code = "FILE_DOES_NOT_EXIST"
    http_status = 404


class InvalidPath(FileManagerError):
    code = "INVALID_FILE_PATH"


class AccessDenied(FileManagerError):
    code = "NOT_ALLOWED"
    http_status = 403


class AlreadyExists(FileManagerError):
    code = "FILE_ALREADY_EXISTS"
    http_status = 409


class OperationNotAllowed(FileManagerError):
    code = "NOT_ALLOWED"
    http_status = 403


class OperationFailed(FileManagerError):
    code = "ERROR"
    http_status = 500


class TransportError(FileManagerError):
    """Connect, login, listing or transfer failure on the FTP session."""
    code = "ERROR"
    http_status = 502

    def __init__(self, message: str):
        super().__init__("ERROR", [message])
        self.message = message


class ListingUnavailable(TransportError):
    """Parent listing needed for permission inference could not be fetched."""

    def __init__(self, path: str, reason: str = ""):
        super().__init__("cannot open file list")
        self.path = path
        self.reason = reason


class FTPDeadlineTimeout(TimeoutError):
    pass

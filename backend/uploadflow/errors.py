"""Application error taxonomy.

Every failure that can reach a client is an AppError carrying one ErrorKind.
Each kind maps to exactly one HTTP status, a stable numeric code and a
human-readable message. The exception handler in main.py renders these as
{"message": ..., "code": ...}; anything else becomes a generic 500.
"""

from enum import Enum


class ErrorKind(Enum):
    """Closed set of application errors: (http_status, code, message)."""

    UNABLE_TO_PARSE_RESPONSE = (500, 0, "unable to parse json")
    IDENTITY_TOKEN_MISSING = (401, 1, "did not get a token")
    UNAUTHORIZED = (401, 2, "unauthorized")
    IDENTITY_LOOKUP_FAILED = (502, 3, "unable to retrieve user details")
    IDENTITY_PROVIDER_UNREACHABLE = (502, 4, "unable to contact identity provider")
    CREATE_FAILED = (500, 5, "unable to create an upload")
    NO_ELIGIBLE_UPLOAD_FOR_ATTACHMENT = (
        403, 6, "no suitable upload found or no additional attachments allowed"
    )
    ILLEGAL_ATTACHMENT = (400, 7, "illegal file")
    ATTACHMENT_PERSIST_FAILED = (500, 8, "unable to add attachment")
    NO_ELIGIBLE_UPLOAD_FOR_PUBLISH = (
        403, 9, "no suitable upload found or upload already published"
    )
    ATTACHMENT_REQUIRED = (403, 10, "at least one attachment required")
    PUBLISH_FAILED = (500, 11, "unable to publish upload")
    QUERY_FAILED = (500, 12, "unable to get uploads")
    WEBHOOK_NOTIFY_FAILED = (500, 13, "unable to notify webhook")

    @property
    def http_status(self) -> int:
        return self.value[0]

    @property
    def code(self) -> int:
        return self.value[1]

    @property
    def message(self) -> str:
        return self.value[2]


class AppError(Exception):
    """Raised for any classified failure.

    Attributes:
        kind: The ErrorKind describing the failure
        http_status: HTTP status returned to the client
        code: Stable machine-readable code
        message: Human-readable message (never includes the raw cause)
    """

    def __init__(self, kind: ErrorKind):
        super().__init__(kind.message)
        self.kind = kind

    @property
    def http_status(self) -> int:
        return self.kind.http_status

    @property
    def code(self) -> int:
        return self.kind.code

    @property
    def message(self) -> str:
        return self.kind.message

    def to_dict(self) -> dict:
        return {"message": self.message, "code": self.code}

    def __repr__(self):
        return f"<AppError(kind={self.kind.name}, status={self.http_status}, code={self.code})>"

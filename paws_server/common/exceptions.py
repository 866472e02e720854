"""
Custom Exception Classes for the PAWS Telemetry Service

Hierarchical exception structure shared by the store, the ingestion
pipeline and the HTTP layer. Every error carries a stable ``kind`` and an
HTTP ``status`` so the API boundary can map it without special cases.
"""


class PawsError(Exception):
    """Base exception for all PAWS service errors"""

    kind = "internal_error"
    status = 500

    def __init__(self, message: str, recoverable: bool = True):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


class InvalidPathError(PawsError):
    """Malformed or unsafe document name"""

    kind = "invalid_path"
    status = 400

    def __init__(self, name: object, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"Invalid document name {name!r}: {reason}")


class DocumentNotFoundError(PawsError):
    """No such document or log"""

    kind = "not_found"
    status = 404

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Document not found: {key}")


class MalformedJSONError(PawsError):
    """Stored document content cannot be parsed"""

    kind = "malformed_json"
    status = 500

    def __init__(self, key: str, detail: str = ""):
        self.key = key
        self.detail = detail
        message = f"Malformed JSON in document: {key}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message, recoverable=False)


class WriteFailureError(PawsError):
    """I/O error while persisting a document"""

    kind = "write_failure"
    status = 500

    def __init__(self, key: str, detail: str = ""):
        self.key = key
        self.detail = detail
        super().__init__(f"Failed to write document {key}: {detail}")


class ValidationError(PawsError):
    """Caller payload is missing the required shape"""

    kind = "validation_error"
    status = 400

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class UnsupportedActionError(PawsError):
    """Unknown action name"""

    kind = "unsupported_action"
    status = 400

    def __init__(self, action: object):
        self.action = action
        super().__init__(f"Unsupported action: {action!r}")

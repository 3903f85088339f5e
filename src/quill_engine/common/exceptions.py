"""Quill-Engine exception hierarchy.

Every error carries a machine-readable ``code`` and the HTTP status the API
layer answers with.
"""


class QuillError(Exception):
    """Base exception for all Quill errors."""

    status_code = 500

    def __init__(self, message: str = "", code: str = "QUILL_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


# ── Client input ──


class ValidationFailedError(QuillError):
    """Raised when caller-supplied data is malformed."""

    status_code = 400

    def __init__(self, message: str = "Invalid input", code: str = "INVALID_INPUT"):
        super().__init__(message, code=code)


class MissingRequiredFieldsError(ValidationFailedError):
    def __init__(self, message: str = "Missing required fields"):
        super().__init__(message, code="MISSING_REQUIRED_FIELDS")


class InvalidSignatureDataError(ValidationFailedError):
    def __init__(self, message: str = "Invalid signature data"):
        super().__init__(message, code="INVALID_SIGNATURE_DATA")


class PayloadTooLargeError(ValidationFailedError):
    def __init__(self, message: str = "Signature payload too large"):
        super().__init__(message, code="PAYLOAD_TOO_LARGE")


class UnsupportedFileError(ValidationFailedError):
    def __init__(self, message: str = "Invalid file type. Only PDF files are allowed."):
        super().__init__(message, code="UPLOAD_ERROR")


# ── Access ──


class SigningLinkInvalidError(QuillError):
    """Raised for every failed signing-link check.

    The message never says which check failed.
    """

    status_code = 404

    def __init__(self):
        super().__init__("Signing link is invalid or expired", code="INVALID_LINK")


# ── Not found ──


class DocumentNotFoundError(QuillError):
    status_code = 404

    def __init__(self, message: str = "Document not found"):
        super().__init__(message, code="NOT_FOUND")


class TemplateNotFoundError(QuillError):
    status_code = 404

    def __init__(self, message: str = "Template not found"):
        super().__init__(message, code="NOT_FOUND")


class OrganizationNotFoundError(QuillError):
    status_code = 404

    def __init__(self, message: str = "Organization not found"):
        super().__init__(message, code="NOT_FOUND")


class FileNotReadyError(QuillError):
    status_code = 404

    def __init__(self, message: str = "Signed document not available"):
        super().__init__(message, code="NOT_READY")


# ── Conflict ──


class DocumentStateError(QuillError):
    """Raised when an operation is not allowed in the document's current status."""

    status_code = 409

    def __init__(self, message: str = "Operation not allowed in current document status"):
        super().__init__(message, code="INVALID_STATE")


class DeleteConflictError(DocumentStateError):
    def __init__(self, message: str = "Signing has started; cancel the document instead of deleting it"):
        super().__init__(message)
        self.code = "DELETE_CONFLICT"

"""
Structured error bodies shared by every router.

Transport-level failures are raised as HTTPException whose `detail` is an
ErrorResponse dump, so clients always see:

    {"detail": {"error_code": "...", "message": "...", "details": [...]}}

Validation and unhandled errors use the same envelope at the top level
(see the exception handlers in skyvault.main).

Conversational failures of the document Q&A pipeline (unsupported type,
unreadable PDF, OCR errors) are NOT errors here: they are answers.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import HTTPException, status
from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """One problem, optionally tied to a request field."""
    field:   str | None = Field(None, description="Offending request field, dotted path")
    message: str
    code:    str        = Field(..., description="Machine-readable error code for client handling")


class ErrorResponse(BaseModel):
    """
    Body of every 4xx/5xx response.
    `error_code` is stable; `message` is for people and may change.
    """
    error_code: str               = Field(..., description="Stable machine-readable code")
    message:    str               = Field(..., description="Human-readable summary")
    details:    list[ErrorDetail] = Field(default_factory=list)
    request_id: str | None        = Field(None, description="Trace ID for log correlation")

    def to_http(self, status_code: int) -> HTTPException:
        return HTTPException(status_code=status_code, detail=self.model_dump())


# ---------------------------------------------------------------------------
# Pre-defined error factories (keeps route handlers thin)
# ---------------------------------------------------------------------------

class FileErrors:
    """Factories for every documented file / chat error case."""

    @staticmethod
    def file_not_found(file_id: UUID | str | None = None) -> HTTPException:
        return ErrorResponse(
            error_code="FILE_NOT_FOUND",
            message="File not found",
            details=(
                [ErrorDetail(field="file_id", message=f"No file '{file_id}' in your drive.", code="FILE_NOT_FOUND")]
                if file_id else []
            ),
        ).to_http(status.HTTP_404_NOT_FOUND)

    @staticmethod
    def trashed_file_not_found() -> HTTPException:
        return ErrorResponse(
            error_code="FILE_NOT_FOUND",
            message="Trashed file not found",
        ).to_http(status.HTTP_404_NOT_FOUND)

    @staticmethod
    def folder_not_found(folder_id: UUID | str) -> HTTPException:
        return ErrorResponse(
            error_code="FOLDER_NOT_FOUND",
            message="Destination folder not found",
            details=[
                ErrorDetail(field="parent_id", message=f"No folder '{folder_id}' in your drive.", code="FOLDER_NOT_FOUND")
            ],
        ).to_http(status.HTTP_404_NOT_FOUND)

    @staticmethod
    def is_folder(file_id: UUID | str) -> HTTPException:
        return ErrorResponse(
            error_code="IS_FOLDER",
            message="Folders cannot be used as chat documents.",
            details=[ErrorDetail(field="file_id", message=f"'{file_id}' is a folder.", code="IS_FOLDER")],
        ).to_http(status.HTTP_400_BAD_REQUEST)

    @staticmethod
    def invalid_name() -> HTTPException:
        return ErrorResponse(
            error_code="INVALID_NAME",
            message="Name is required",
            details=[ErrorDetail(field="name", message="Name must not be blank.", code="INVALID_NAME")],
        ).to_http(status.HTTP_400_BAD_REQUEST)

    @staticmethod
    def move_into_self() -> HTTPException:
        return ErrorResponse(
            error_code="INVALID_MOVE",
            message="Cannot move a folder into itself",
        ).to_http(status.HTTP_400_BAD_REQUEST)

    @staticmethod
    def move_into_descendant() -> HTTPException:
        return ErrorResponse(
            error_code="INVALID_MOVE",
            message="Cannot move a folder into one of its own subfolders",
        ).to_http(status.HTTP_400_BAD_REQUEST)

    @staticmethod
    def unsupported_file_type(filename: str, content_type: str) -> HTTPException:
        return ErrorResponse(
            error_code="UNSUPPORTED_FILE_TYPE",
            message=f"File type '{content_type}' is not supported.",
            details=[
                ErrorDetail(
                    field="file",
                    message=(
                        f"'{filename}' has an unsupported type '{content_type}'. "
                        "Allowed: images, text, PDF, Word."
                    ),
                    code="UNSUPPORTED_FILE_TYPE",
                )
            ],
        ).to_http(status.HTTP_400_BAD_REQUEST)

    @staticmethod
    def missing_file() -> HTTPException:
        return ErrorResponse(
            error_code="MISSING_FILE",
            message="The upload form has no file part.",
            details=[ErrorDetail(field="file", message="The 'file' multipart field is required.", code="MISSING_FILE")],
        ).to_http(status.HTTP_400_BAD_REQUEST)

    @staticmethod
    def file_too_large(size_bytes: int, limit_bytes: int) -> HTTPException:
        return ErrorResponse(
            error_code="FILE_TOO_LARGE",
            message=f"Uploaded file exceeds the {limit_bytes // (1024 * 1024)} MB limit.",
            details=[
                ErrorDetail(
                    field="file",
                    message=f"Received {size_bytes:,} bytes; limit is {limit_bytes:,} bytes.",
                    code="FILE_TOO_LARGE",
                )
            ],
        ).to_http(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE)

    @staticmethod
    def missing_question() -> HTTPException:
        return ErrorResponse(
            error_code="MISSING_QUESTION",
            message="The conversation must contain at least one user message.",
            details=[ErrorDetail(field="messages", message="No message with role 'user'.", code="MISSING_QUESTION")],
        ).to_http(status.HTTP_400_BAD_REQUEST)

    @staticmethod
    def storage_error(detail: str | None = None) -> HTTPException:
        return ErrorResponse(
            error_code="STORAGE_ERROR",
            message="Failed to store the file. Please retry.",
            details=(
                [ErrorDetail(field=None, message=detail, code="STORAGE_ERROR")]
                if detail else []
            ),
        ).to_http(status.HTTP_502_BAD_GATEWAY)

    @staticmethod
    def storage_not_configured() -> HTTPException:
        return ErrorResponse(
            error_code="STORAGE_NOT_CONFIGURED",
            message="File storage is not configured on this server.",
        ).to_http(status.HTTP_503_SERVICE_UNAVAILABLE)

    @staticmethod
    def forbidden_env_key(key: str) -> HTTPException:
        return ErrorResponse(
            error_code="FORBIDDEN",
            message="Access denied for this environment key.",
            details=[ErrorDetail(field="key", message=f"'{key}' cannot be inspected.", code="FORBIDDEN")],
        ).to_http(status.HTTP_403_FORBIDDEN)


def internal_error(request_id: str | None = None) -> ErrorResponse:
    return ErrorResponse(
        error_code="INTERNAL_ERROR",
        message="Something went wrong on our side. Quote the request id when reporting it.",
        request_id=request_id,
    )

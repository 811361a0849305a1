"""
Application errors.

Services raise these; the handlers registered in app.main turn them into
JSON responses. Scope violations on a specific resource are raised as
ResourceNotFound so that callers cannot probe for existence.
"""
from fastapi import status


class PortalError(Exception):
    """Base class for errors that map onto an HTTP response."""
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"detail": self.message}


class AuthorizationDenied(PortalError):
    """Identity present but role or scope is insufficient."""
    status_code = status.HTTP_403_FORBIDDEN


class ResourceNotFound(PortalError):
    status_code = status.HTTP_404_NOT_FOUND


class ScopeMisconfigured(PortalError):
    """The caller's account lacks the affiliation its role requires."""
    status_code = status.HTTP_400_BAD_REQUEST


class ValidationFailed(PortalError):
    """Field-level validation failure.

    field_errors maps an input name to its messages; form_errors holds
    messages that are not tied to a single input.
    """
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        field_errors: dict[str, list[str]] | None = None,
        form_errors: list[str] | None = None,
        message: str = "Validation failed",
    ):
        super().__init__(message)
        self.field_errors = field_errors or {}
        self.form_errors = form_errors or []

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationFailed":
        return cls(field_errors={field: [message]})

    @classmethod
    def for_form(cls, message: str) -> "ValidationFailed":
        return cls(form_errors=[message])

    def to_dict(self) -> dict:
        return {
            "detail": self.message,
            "field_errors": self.field_errors,
            "form_errors": self.form_errors,
        }


class InvariantViolation(PortalError):
    """A write was refused to keep data consistent (e.g. delete with dependents).

    Rendered as an error toast rather than an error page.
    """
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, description: str, title: str = "Error"):
        super().__init__(description)
        self.title = title
        self.description = description

    def to_dict(self) -> dict:
        return {
            "detail": self.description,
            "toast": {"type": "error", "title": self.title, "description": self.description},
        }


class NotificationFailure(Exception):
    """Raised by the email client; always caught by the notification layer."""
    pass

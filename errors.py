from typing import Optional


class ServiceError(ValueError):
    status_code = 500

    def __init__(self, message: str, details: Optional[list[dict]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_body(self) -> dict[str, object]:
        body: dict[str, object] = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationFailed(ServiceError):
    status_code = 400

    def __init__(self, details: list[dict], message: str = "Validation failed") -> None:
        super().__init__(message, details)


class InvalidArgument(ServiceError):
    status_code = 400


class Unauthorized(ServiceError):
    status_code = 401


class Forbidden(ServiceError):
    status_code = 403


class NotFound(ServiceError):
    status_code = 404


class Conflict(ServiceError):
    # Duplicate identities and blocked deletes surface as 400.
    status_code = 400

"""
Domain exceptions raised by the service layer.

Services never build HTTP responses; they raise one of these and the
handler registered in ``main.py`` renders ``{"errors": {...}}`` with the
class's ``status_code``.  The ``errors`` mapping is keyed by field name
so clients can attach messages to form inputs.
"""


class DomainError(Exception):
    status_code: int = 400
    default_errors: dict[str, str] = {"request": "is invalid"}

    def __init__(self, errors: dict[str, str] | None = None) -> None:
        self.errors = errors or dict(self.default_errors)
        super().__init__(", ".join(f"{k} {v}" for k, v in self.errors.items()))


class ValidationError(DomainError):
    status_code = 422
    default_errors = {"body": "is invalid"}


class Unauthorized(DomainError):
    status_code = 401
    default_errors = {"identity": "is required"}


class Forbidden(DomainError):
    status_code = 403
    default_errors = {"permission": "is denied"}


class AlreadyVoted(DomainError):
    status_code = 400
    default_errors = {"vote": "has already been cast"}


class VoteNotFound(DomainError):
    status_code = 404
    default_errors = {"vote": "does not exist"}


class EntityNotFound(DomainError):
    status_code = 404
    default_errors = {"entity": "not found"}


class InvalidFileType(DomainError):
    status_code = 422
    default_errors = {"File type": "is invalid. Must be .png, .jpeg, .jpg. or .gif."}


class FileTooLarge(DomainError):
    status_code = 422
    default_errors = {"File size": "is too large. Max limit is 1 MB."}


class AssetRemovalError(DomainError):
    status_code = 500
    default_errors = {"file": "could not be removed"}

    def __init__(self, filenames: list[str]) -> None:
        self.filenames = filenames
        super().__init__({"file": f"could not be removed: {', '.join(filenames)}"})

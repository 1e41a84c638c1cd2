class FinanceError(ValueError):
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(FinanceError):
    status_code = 400


class AuthError(FinanceError):
    status_code = 401


class Unauthenticated(AuthError):
    """No credential was presented."""

    status_code = 401


class Unauthorized(AuthError):
    """A credential was presented but is invalid or expired."""

    status_code = 403


class NotFoundError(FinanceError):
    status_code = 404


class ConflictError(FinanceError):
    status_code = 409


class ServerError(FinanceError):
    status_code = 500

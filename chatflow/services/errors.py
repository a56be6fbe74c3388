"""Service-layer exceptions that map onto HTTP statuses."""


class ServiceError(Exception):
    """A domain failure carrying the HTTP status the API should report."""
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NotFoundError(ServiceError):
    def __init__(self, message: str):
        super().__init__(message, status_code=404)


class ForbiddenError(ServiceError):
    def __init__(self, message: str):
        super().__init__(message, status_code=403)


class ConflictError(ServiceError):
    def __init__(self, message: str):
        super().__init__(message, status_code=409)


class InvitationError(ServiceError):
    """Invitation could not be created or accepted."""


class StorageError(ServiceError):
    """Object storage upload/delete failure."""
    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message, status_code=status_code)

class DevTrackError(Exception):
    """Base class for errors that map onto an API response."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(DevTrackError):
    status_code = 404


class AccessDeniedError(DevTrackError):
    status_code = 403


class ValidationError(DevTrackError):
    status_code = 400


class InvalidTokenError(DevTrackError):
    """The push provider rejected a delivery token; the registry should drop it."""

    status_code = 400


class CollaboratorUnavailableError(DevTrackError):
    """GitHub, the AI provider or the push provider could not be reached."""

    status_code = 502

    def __init__(self, collaborator: str, message: str, status_code: int | None = None):
        super().__init__(f"{collaborator}: {message}", status_code)
        self.collaborator = collaborator

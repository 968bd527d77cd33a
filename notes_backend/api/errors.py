class NotesError(Exception):
    """Base error for note and account operations. Carries its HTTP status."""
    status_code = 500
    default_detail = "Internal error."

    def __init__(self, detail=None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class DuplicateUser(NotesError):
    status_code = 409
    default_detail = "Email already registered."


class InvalidCredentials(NotesError):
    status_code = 401
    default_detail = "Invalid email or password."


class NotAuthenticated(NotesError):
    status_code = 401
    default_detail = "Not authenticated."


class NotFound(NotesError):
    status_code = 404
    default_detail = "Note not found."


class ValidationError(NotesError):
    status_code = 400
    default_detail = "Invalid request."

# --- Service Layer Exception Classes ---
class ServiceError(Exception):
    """General exception class for the service layer."""
    code = "SERVICE_ERROR"

class DuplicateRecordError(ServiceError):
    """The (student_id, session_id) pair is already taken by another record."""
    code = "CONFLICT"

class InvalidInputError(ServiceError):
    """Input that slipped past schema validation but cannot be stored, e.g. an empty student id."""
    code = "BAD_REQUEST"

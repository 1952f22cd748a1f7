from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Body of every error the API returns on its own, e.g. {"error": "CONFLICT", "message": "..."}."""
    error: str
    message: str

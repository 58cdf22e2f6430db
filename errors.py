"""Error kinds raised by the stores and turned into JSON responses in main.py."""

from typing import Any, Dict, List, Optional


class ShopError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Dict[str, Any]]] = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"message": self.message}
        if self.errors is not None:
            body["errors"] = self.errors
        return body


class ValidationError(ShopError):
    status_code = 400
    default_message = "Validation failed"


class Unauthorized(ShopError):
    status_code = 401
    default_message = "Unauthorized"


class InvalidToken(ShopError):
    status_code = 403
    default_message = "Invalid token"


class NotFound(ShopError):
    status_code = 404
    default_message = "Not found"


class Conflict(ShopError):
    status_code = 409
    default_message = "Conflict"


class InternalError(ShopError):
    pass

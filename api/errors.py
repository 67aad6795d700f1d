class BingoError(Exception):
    """Base error rendered as a JSON response by the HTTP layer."""

    status = 400
    code = "BAD_REQUEST"

    def __init__(self, message, code=None, **extra):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.extra = extra

    def to_dict(self):
        body = {'error': self.message, 'code': self.code}
        body.update(self.extra)
        return body


class InvalidRequest(BingoError):
    status = 400
    code = "INVALID_REQUEST"


class Unauthorized(BingoError):
    status = 401
    code = "UNAUTHORIZED"


class Forbidden(BingoError):
    status = 403
    code = "FORBIDDEN"


class NotFound(BingoError):
    status = 404
    code = "NOT_FOUND"


class Conflict(BingoError):
    status = 409
    code = "CONFLICT"


class InsufficientBalance(BingoError):
    status = 400
    code = "INSUFFICIENT_BALANCE"


class RateLimited(BingoError):
    status = 429
    code = "RATE_LIMITED"

    def __init__(self, message, retry_after):
        super().__init__(message, retry_after=retry_after)
        self.retry_after = retry_after


def missing_fields(payload, *names):
    """Raise InvalidRequest naming every required field that is empty."""
    missing = [name for name in names if payload.get(name) in (None, '', [])]
    if missing:
        raise InvalidRequest(f"Missing required fields: {', '.join(missing)}")

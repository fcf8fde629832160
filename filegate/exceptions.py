from fastapi import status


class ApiError(Exception):
    """A failure that maps straight onto one JSON error body."""

    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        error: str,
        message: str | None = None,
    ) -> None:
        super().__init__(message or error)
        self.status_code = status_code
        self.code = code
        self.error = error
        self.message = message


def bad_request(code: str, error: str, message: str | None = None) -> ApiError:
    return ApiError(status_code=status.HTTP_400_BAD_REQUEST, code=code, error=error, message=message)

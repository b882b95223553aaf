from crm.core.errors import ApiError


class PublicApiError(Exception):
    status_code = 500
    code = "DB_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_api_error(self) -> ApiError:
        return ApiError(self.status_code, self.message, self.code)


class ValidationFailedError(PublicApiError):
    status_code = 422
    code = "VALIDATION_ERROR"


class NotFoundError(PublicApiError):
    status_code = 404
    code = "NOT_FOUND"


class AmbiguousStageError(PublicApiError):
    """A stage label matched more than one stage on the board."""

    status_code = 409
    code = "AMBIGUOUS_STAGE"


class AmbiguousMatchError(PublicApiError):
    """A phone/email identity matched more than one open deal on the board."""

    status_code = 409
    code = "AMBIGUOUS_MATCH"


class DatabaseError(PublicApiError):
    pass

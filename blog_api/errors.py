"""
Domain error taxonomy.

Services raise these; ``blog_api.main`` turns them into JSON responses
with the ``status_code`` carried by each class.
"""


class BlogError(Exception):
    status_code: int = 500
    default_detail: str = "Internal error"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        return {"detail": self.detail}


class ValidationError(BlogError):
    """One or more client-correctable field errors, reported together."""

    status_code = 400
    default_detail = "Validation failed"

    def __init__(self, errors: list[dict], detail: str | None = None) -> None:
        self.errors = errors
        super().__init__(detail)

    @property
    def fields(self) -> list[str]:
        return [e["field"] for e in self.errors]

    def to_dict(self) -> dict:
        return {"detail": self.detail, "errors": self.errors}


class InvalidKind(ValidationError):
    def __init__(self, kind: str) -> None:
        super().__init__(
            [{"field": "kind", "message": f"Unknown interaction kind: {kind!r}"}],
            detail="Invalid interaction kind",
        )


class NotFound(BlogError):
    status_code = 404
    default_detail = "Not found"


class PermissionDenied(BlogError):
    status_code = 403
    default_detail = "Not allowed"


class Conflict(BlogError):
    status_code = 409
    default_detail = "Conflicting update"


class Unavailable(BlogError):
    status_code = 503
    default_detail = "Storage unavailable"


class ErrorCollector:
    """
    Accumulates field errors so a validator can report every violation
    in one round trip instead of stopping at the first.
    """

    def __init__(self) -> None:
        self.errors: list[dict] = []

    def add(self, field: str, message: str) -> None:
        self.errors.append({"field": field, "message": message})

    def raise_if_any(self) -> None:
        if self.errors:
            raise ValidationError(self.errors)

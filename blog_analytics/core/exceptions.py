"""Domain exceptions mapped to HTTP responses in ``blog_analytics.main``."""


class ValidationError(Exception):
    """Malformed or semantically invalid request input. Carries every message found."""

    def __init__(self, errors: str | list[str]) -> None:
        self.errors = [errors] if isinstance(errors, str) else list(errors)
        super().__init__("; ".join(self.errors))

    @property
    def message(self) -> str:
        return "; ".join(self.errors)


class NotFoundError(Exception):
    """A directly referenced entity does not exist (or is not publicly visible)."""

    def __init__(self, message: str = "Not found") -> None:
        self.message = message
        super().__init__(message)


class StoreError(Exception):
    """The record store could not complete an operation."""

    def __init__(self, message: str = "Record store unavailable") -> None:
        self.message = message
        super().__init__(message)

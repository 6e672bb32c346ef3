"""Error taxonomy shared by the listing services and the HTTP layer."""


class BadRequestError(ValueError):
    """A mandatory identifying parameter is missing or unusable."""


class NotFoundError(LookupError):
    """A requested singular entity does not exist."""


class UpstreamFailure(RuntimeError):
    """The store failed while serving a listing stage."""

    def __init__(self, stage: str, message: str = "Upstream store call failed") -> None:
        super().__init__(f"{message} (stage: {stage})")
        self.stage = stage


class CatalogError(RuntimeError):
    """A field catalog references a path the ORM mappers do not know."""

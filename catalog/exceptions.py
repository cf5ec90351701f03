"""
Exception hierarchy for the catalog ingestion engine.

The queue runtime inspects these classes to decide what happens to a job:
- NotFoundError: the job fails immediately, no retry
- SourceFetchError / SourceSchemaError: transient, retried with backoff
- VocabularyError: data-integrity failure, retried then surfaced as failed
- PermanentImageError: never raised out of a job, recorded on the page row
"""


class CatalogError(Exception):
    """Base error for catalog operations."""

    pass


class SourceFetchError(CatalogError):
    """Network, anti-bot or rate-limit failure while talking to a catalog."""

    pass


class SourceSchemaError(SourceFetchError):
    """
    A catalog response did not have the expected shape.

    Raised when a pydantic model rejects an API payload or when an HTML
    page is missing an element the adapter relies on.
    """

    pass


class ByparrError(SourceFetchError):
    """The browser-automation proxy reported a failure."""

    pass


class VocabularyError(CatalogError):
    """A native catalog value has no canonical mapping."""

    def __init__(self, field: str, value):
        self.field = field
        self.value = value
        super().__init__(f"Unmapped {field} value: {value!r}")


class NotFoundError(CatalogError):
    """A serie, chapter, source or job referenced by a job does not exist."""

    pass


class SourceNotFoundError(NotFoundError):
    """No adapter is registered under the requested id."""

    def __init__(self, source_id: str):
        self.source_id = source_id
        super().__init__(f"Source not found: {source_id}")


class PermanentImageError(CatalogError):
    """A page image can never be produced in any supported format."""

    pass


class ImageTooLargeError(PermanentImageError):
    """Image dimensions exceed the maximum of every output format."""

    def __init__(self, width: int, height: int, animated: bool = False):
        self.width = width
        self.height = height
        self.animated = animated
        kind = "Animated image" if animated else "Image"
        super().__init__(f"{kind} too large to encode: {width}x{height}")


class PayloadValidationError(CatalogError):
    """A job payload does not match its queue's schema."""

    pass


class DeletionStateError(CatalogError):
    """Soft delete or restore requested from the wrong state."""

    pass


class SerieEditError(CatalogError):
    """An admin edit was rejected (bad field value or link conflict)."""

    pass


class SearchIndexError(CatalogError):
    """The search engine rejected a request."""

    pass


class StorageError(CatalogError):
    """The object store rejected a request."""

    pass

"""
Exception types raised across the conversion pipeline and the asset store.
Recoverable failures (asset fetches, import resolution) are caught by their
callers and logged; the rest propagate to the HTTP layer.
"""


class PageKitError(Exception):
    """Base class for all pagekit errors."""


class ScrapeInputError(PageKitError):
    """The captured page is not a usable document tree."""


class AssetFetchError(PageKitError):
    def __init__(self, url: str, reason: str, status_code: int | None = None, retryable: bool = False,
                 retry_after: float | None = None):
        self.url = url
        self.reason = reason
        self.status_code = status_code
        self.retryable = retryable
        self.retry_after = retry_after
        super().__init__(f"{url}: {reason}")


class CircularOrDeepImportError(PageKitError):
    def __init__(self, url: str, circular: bool):
        self.url = url
        self.circular = circular
        kind = "circular import" if circular else "import depth limit reached"
        super().__init__(f"{kind}: {url}")


class SessionNotFoundError(PageKitError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found or expired: {session_id}")


class MetadataCorruptionError(PageKitError):
    """metadata.json is missing, unparsable or does not match the session schema."""


class MetadataLockTimeout(PageKitError):
    """The metadata file lock could not be acquired within the retry budget."""


class SchemaValidationError(PageKitError):
    def __init__(self, errors: list[dict]):
        self.errors = errors
        preview = "; ".join(f"{e['path']}: {e['message']}" for e in errors[:3])
        super().__init__(f"Template failed validation ({len(errors)} errors): {preview}")


class PackagingError(PageKitError):
    """The exported kit archive failed its integrity check."""

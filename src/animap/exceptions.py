"""Exceptions raised by the mapping pipeline."""


class AnimapError(Exception):
    """Base exception for all pipeline errors."""

    pass


class ConfigurationError(AnimapError):
    """Raised when required settings are missing or invalid."""

    pass


class CacheStoreError(AnimapError):
    """Raised when the identifier cache cannot be opened, migrated, or written."""

    pass


class SourceFetchError(AnimapError):
    """Raised when a remote source cannot be fetched or decoded."""

    def __init__(self, message: str, *, url: str | None = None, status: int | None = None):
        super().__init__(message)
        self.url = url
        self.status = status


class RankingIngestionError(SourceFetchError):
    """Raised when any page of the MAL ranking cannot be retrieved."""

    pass


class BridgeTableError(SourceFetchError):
    """Raised when anime-list.xml cannot be loaded from cache or network."""

    pass


class TitleAuthorityError(SourceFetchError):
    """Raised when animetitles.xml cannot be fetched or parsed."""

    pass


class TmdbSearchError(SourceFetchError):
    """Raised when a TMDB search request fails."""

    pass


class RepositoryError(AnimapError):
    """Raised when an artifact or mapping file cannot be read or written."""

    pass

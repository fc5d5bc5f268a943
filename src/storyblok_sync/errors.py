"""Exception hierarchy for storyblok_sync.

Fetch and store failures are local to one collection: the engine wraps
them in ``CollectionSyncError`` so callers see which collection failed
alongside the original message.
"""


class StoryblokSyncError(Exception):
    """Base class for all storyblok_sync errors."""


class StoryblokAPIError(StoryblokSyncError):
    """The Storyblok API answered with an error or an unusable payload.

    Attributes:
        status_code: HTTP status code, or ``None`` when the failure was not
            an HTTP error (connection refused, invalid JSON, ...).
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class FetchError(StoryblokSyncError):
    """A fetch collaborator call failed; the message names what was fetched."""


class CollectionSyncError(StoryblokSyncError):
    """A sync pass for one collection failed.

    Attributes:
        collection: Name of the collection whose sync pass failed.
    """

    def __init__(self, collection: str, message: str):
        super().__init__(f"[{collection}] {message}")
        self.collection = collection

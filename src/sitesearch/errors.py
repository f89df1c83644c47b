"""
Error taxonomy for crawling, indexing and search.

Every error carries a short machine-readable `code` so the operation
responses can report it without string matching.
"""


class SiteSearchError(Exception):
    code = "error"


class UserInputError(SiteSearchError):
    """Bad input from the caller; reported directly, never retried."""
    code = "user_input"


class EmptyQueryError(UserInputError):
    code = "empty_query"


class InvalidUrlError(UserInputError):
    code = "invalid_url"


class OutOfScopeError(UserInputError):
    code = "out_of_scope"


class FetchError(SiteSearchError):
    code = "fetch_failed"


class NetworkError(FetchError):
    """Timeout or I/O failure that survived every retry attempt."""


class DnsError(FetchError):
    """Host name could not be resolved; never retried."""


class CrawlCancelledError(SiteSearchError):
    """Raised by crawl tasks when a stop was requested."""
    code = "cancelled"


class ConsistencyError(SiteSearchError):
    """A row expected to exist (e.g. right after an upsert) is missing."""
    code = "consistency"


class AlreadyRunningError(SiteSearchError):
    code = "already_running"


class NotRunningError(SiteSearchError):
    code = "not_running"

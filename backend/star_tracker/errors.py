class SearchError(Exception):
    """Base class for failures raised inside the search path."""


class ValidationFailure(SearchError):
    """Malformed request, rejected before it reaches the store."""


class TranslationFailure(SearchError):
    """The model declined the utterance or produced an unusable query."""


class ExecutionFailure(SearchError):
    """The store was unreachable or rejected the query."""

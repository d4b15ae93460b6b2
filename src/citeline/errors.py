"""Exception hierarchy for citeline.

Only ``ConfigError`` and ``IndexStoreError`` normally reach callers. The
enrichment failures (``IndexUnavailable``, ``RetrievalFailed``,
``VisionFailed``, ``MalformedSourcePayload``) are raised inside their
component and converted to a fail-soft result at its public boundary.
"""

from __future__ import annotations


class CitelineError(Exception):
    """Base class for all citeline errors."""


class ConfigError(CitelineError, ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


class IndexStoreError(CitelineError):
    """Raised by a knowledge index store when an operation cannot complete."""


class IndexNotFoundError(IndexStoreError):
    """Raised when an index id is not known to the store."""


class IndexUnavailable(CitelineError):
    """Index creation or lookup failed for a scope."""


class RetrievalFailed(CitelineError):
    """A query against a valid index failed or timed out."""


class VisionFailed(CitelineError):
    """The image-reasoning endpoint failed or timed out."""


class MalformedSourcePayload(CitelineError, ValueError):
    """A sources payload could not be reduced to a list of records."""


class OwnerNotFoundError(CitelineError, LookupError):
    """Raised when a workspace, thread or project record does not exist."""

"""
Exception hierarchy for Site Optimizer.

Per-directive failures (missing documents, missing selectors, write errors)
are caught by the mutation engine and turned into ``Rejected`` results.
Batch-level failures (a snapshot that cannot be taken) propagate to the caller.
"""


class SiteOptimizerError(Exception):
    """Base class for all Site Optimizer errors."""
    pass


class NotFoundError(SiteOptimizerError):
    """Raised when a referenced document, selector or snapshot is missing."""
    pass


class DocumentNotFoundError(NotFoundError):
    """Raised when a directive targets a document absent from the tree."""
    pass


class SelectorNotFoundError(NotFoundError):
    """Raised when a selector matches no node in the target document."""
    pass


class SnapshotNotFoundError(NotFoundError):
    """Raised when a rollback references an unknown snapshot id."""
    pass


class DirectiveValidationError(SiteOptimizerError):
    """Raised when generated payload violates a hard constraint."""
    pass


class StorageError(SiteOptimizerError):
    """Raised when reading or writing local state fails."""
    pass


class SnapshotError(StorageError):
    """Raised when a snapshot cannot be created or restored."""
    pass


class ExternalCollaboratorError(SiteOptimizerError):
    """Raised when an external provider (generation, SERP) fails."""
    pass


class LLMClientError(ExternalCollaboratorError):
    """Raised when LLM operations fail."""
    pass


class SerpProviderError(ExternalCollaboratorError):
    """Raised when a SERP lookup fails."""
    pass


class SignalValidationError(SiteOptimizerError, ValueError):
    """Raised when a performance signal is out of range."""
    pass


class SignalLoadError(SiteOptimizerError):
    """Raised when a signals file cannot be read or parsed."""
    pass


class OpportunityInvariantError(SiteOptimizerError):
    """Raised when an opportunity would be created from a non-matching signal."""
    pass

"""Error taxonomy shared by the job pipeline, stores, providers and publishing."""


class ContentForgeError(Exception):
    """Base class for all application errors."""

    kind = "internal"


class ValidationError(ContentForgeError):
    """Malformed request, rejected before anything is persisted."""

    kind = "validation"


class ProviderError(ContentForgeError):
    """Generative provider call failed or returned unusable data."""

    kind = "provider"


class GenerationTimeoutError(ProviderError, TimeoutError):
    """A provider call or the whole batch exceeded its time budget."""

    kind = "timeout"


class StoreError(ContentForgeError):
    """Persistence failure (store unavailable, corrupt record, ...)."""

    kind = "store"


class NotFoundError(ContentForgeError):
    """Record does not exist or is owned by someone else."""

    kind = "not_found"


class InvalidStateError(ContentForgeError):
    """Action is not allowed in the record's current state."""

    kind = "invalid_state"


class PublishError(ContentForgeError):
    """Webhook publish failed (transport error or non-2xx response)."""

    kind = "publish"


class JobCancelled(Exception):
    """Raised inside the processor when a cancellation is observed.

    Not an error: the job ends as ``cancelled`` with no error message.
    """


class JobSuperseded(Exception):
    """Raised inside the processor when another processor has claimed the job.

    Not an error: the job keeps running under its new owner.
    """

"""
Domain exceptions shared by the API and the delivery worker.
"""


class BrokerNotReadyError(RuntimeError):
    """Raised when publishing before connect + topic provisioning finished."""

    def __init__(self, message: str = "Kafka producer not ready"):
        super().__init__(message)


class TemplateNotFoundError(LookupError):
    """Raised by the worker when a message references a missing template."""

    def __init__(self, template_id):
        self.template_id = template_id
        super().__init__(f"Template with ID {template_id} not found")


class DeliveryError(RuntimeError):
    """Raised by the email gateway when a message could not be handed off."""


class RateLimitExceeded(Exception):
    """Raised by the rate-limit dependency; rendered as a 429 response."""

    def __init__(self, limit: int, retry_after: int):
        self.limit = limit
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded, retry after {retry_after}s")


class ShutdownRequested(Exception):
    """Raised inside a consumer handler to abandon a record without committing it."""


class DeadLetterAlreadyRetried(Exception):
    """Raised when replaying an entry whose one-shot retry flag is already set."""

    def __init__(self, entry_id: int):
        self.entry_id = entry_id
        super().__init__(f"DLQ entry {entry_id} has already been retried")

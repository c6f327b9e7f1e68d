# notifier/errors.py


class NotifierError(Exception):
    """Base error for the notification pipeline."""


class EventValidationError(NotifierError):
    """Payload is structurally invalid; never retried."""


class StoreError(NotifierError):
    """Notification or purchase-history store unreachable or rejected a write."""


class CatalogError(NotifierError):
    pass


class DirectoryError(NotifierError):
    pass


class OrderSourceError(NotifierError):
    pass


class EmailDeliveryError(NotifierError):
    pass


class PublishError(NotifierError):
    """Bus producer could not publish a message."""

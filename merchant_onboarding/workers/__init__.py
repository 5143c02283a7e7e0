"""Background workers for async processing."""
from .outbox_publisher import start_outbox_publisher
from .request_expiry_worker import start_request_expiry_worker

__all__ = ["start_outbox_publisher", "start_request_expiry_worker"]

"""Audit/event log sink for domain events."""

from typing import Any

from app.utils.logging import get_audit_logger


class AuditLog:
    """Writes domain events to the audit logger.

    Every event is one log line whose ``extra`` carries the event type and
    its fields, so a log shipper can index them.
    """

    def __init__(self, logger=None):
        self.logger = logger or get_audit_logger()

    def record(self, event_type: str, **fields: Any) -> None:
        payload = {key: str(value) if value is not None else None for key, value in fields.items()}
        self.logger.info(
            f"audit event: {event_type}",
            extra={"event_type": event_type, "event": payload},
        )


audit_log = AuditLog()

"""Dead-letter log for events the workflow had to drop.

Dropped reviewer callbacks, undelivered answers and failed archive writes
are otherwise invisible to the people who could act on them. They are written
to a dedicated logger and, when a path is configured, appended as JSON lines
to a file that can be inspected or replayed.
"""

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from tutor_relay.metrics.workflow_metrics import dead_letter_total

logger = logging.getLogger(__name__)
dead_letter_logger = logging.getLogger("tutor_relay.dead_letter")


class DeadLetterReason:
    UNKNOWN_RECORD = "unknown_record"
    DUPLICATE_APPROVAL = "duplicate_approval"
    DELIVERY_FAILED = "delivery_failed"
    ARCHIVE_FAILED = "archive_failed"
    REVIEW_CARD_FAILED = "review_card_failed"
    INVALID_CALLBACK = "invalid_callback"
    PERSIST_FAILED = "persist_failed"
    CALLBACK_REJECTED = "callback_rejected"
    CALLBACK_FAILED = "callback_failed"


class DeadLetterLog:
    """Records dropped events. Never raises."""

    def __init__(self, file_path: Optional[str] = None) -> None:
        self.file_path = Path(file_path) if file_path else None
        self._lock = threading.Lock()

    def record(self, reason: str, **context: Any) -> None:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "reason": reason,
            **context,
        }
        dead_letter_total.labels(reason=reason).inc()
        dead_letter_logger.warning(
            "Dropped event: %s", reason, extra={"dead_letter": entry}
        )

        if self.file_path is None:
            return
        try:
            line = json.dumps(entry, default=str)
            with self._lock:
                self.file_path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.file_path, "a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
        except Exception:
            logger.exception("Failed to write dead-letter entry for %s", reason)

import json
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from ...application.ports.event_logger import SchedulingEventLogger


class StdSchedulingEventLogger(SchedulingEventLogger):
    def __init__(self) -> None:
        self._logger = logging.getLogger(__name__)

    def log(self, event: str, appointment_id: Optional[str] = None, success: bool = True, details: Optional[Dict[str, Any]] = None) -> None:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": event,
            "appointment_id": appointment_id,
            "success": success,
            "details": details or {},
        }
        level = logging.INFO if success else logging.WARNING
        self._logger.log(level, f"SCHEDULING: {json.dumps(entry, default=str)}")

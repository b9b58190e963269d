from typing import Optional, Dict, Any, Protocol


class SchedulingEventLogger(Protocol):
    def log(self, event: str, appointment_id: Optional[str] = None, success: bool = True, details: Optional[Dict[str, Any]] = None) -> None:
        ...

"""Service health reporting."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

SERVICE_NAME = "backend_main"


@dataclass
class HealthInfo:
    timestamp: datetime
    service: str

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp.isoformat(), "service": self.service}


class HealthService:
    """Reports that the service is alive."""

    def get_health_status(self) -> HealthInfo:
        return HealthInfo(timestamp=datetime.now(timezone.utc), service=SERVICE_NAME)
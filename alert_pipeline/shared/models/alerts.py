from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class AlertType(str, Enum):
    WEATHER = "weather"
    ROAD = "road"
    FIRE = "fire"
    POLICE = "police"
    MEDICAL = "medical"
    EMERGENCY = "emergency"
    OTHER = "other"


class AlertSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertLocation(BaseModel):
    latitude: float
    longitude: float
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None

    def display_text(self) -> str:
        """Human readable address, or a placeholder when nothing is known"""
        parts = [p for p in (self.address, self.city, self.state, self.zip_code) if p]
        return ", ".join(parts) if parts else "No specific location"


class PosterIdentity(BaseModel):
    """Who posted an alert; ``user_id`` is excluded from the alert's own fan-out"""
    name: str = Field(default="Unknown")
    user_id: str = Field(default="unknown")

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class DeliveryStatus(str, Enum):
    DELIVERED = "delivered"
    FAILED = "failed"
    SKIPPED = "skipped"


class SkipReason(str, Enum):
    NO_ADDRESS = "no_address"
    MUTED = "muted"


class ChannelResult(BaseModel):
    channel: str
    ok: bool
    error: Optional[str] = None


class DeliveryOutcome(BaseModel):
    """Result of notifying one recipient. Outcomes are values, never raised."""
    recipient_id: str
    status: DeliveryStatus
    reason: Optional[str] = None
    channels: List[ChannelResult] = Field(default_factory=list)

    model_config = {"frozen": True}

    @classmethod
    def delivered(cls, recipient_id: str, channels: List[ChannelResult]) -> "DeliveryOutcome":
        return cls(recipient_id=recipient_id, status=DeliveryStatus.DELIVERED, channels=channels)

    @classmethod
    def failed(cls, recipient_id: str, reason: str, channels: Optional[List[ChannelResult]] = None) -> "DeliveryOutcome":
        return cls(recipient_id=recipient_id, status=DeliveryStatus.FAILED, reason=reason, channels=channels or [])

    @classmethod
    def skipped(cls, recipient_id: str, reason: SkipReason) -> "DeliveryOutcome":
        return cls(recipient_id=recipient_id, status=DeliveryStatus.SKIPPED, reason=reason.value)


class FanoutReport(BaseModel):
    """Aggregated outcomes of one fan-out pass"""
    alert_id: str
    attempted: int = 0
    delivered: int = 0
    failed: int = 0
    skipped: int = 0
    outcomes: Dict[str, DeliveryOutcome] = Field(default_factory=dict)

    @classmethod
    def from_outcomes(cls, alert_id: str, outcomes: List[DeliveryOutcome]) -> "FanoutReport":
        return cls(
            alert_id=alert_id,
            attempted=len(outcomes),
            delivered=sum(1 for o in outcomes if o.status == DeliveryStatus.DELIVERED),
            failed=sum(1 for o in outcomes if o.status == DeliveryStatus.FAILED),
            skipped=sum(1 for o in outcomes if o.status == DeliveryStatus.SKIPPED),
            outcomes={o.recipient_id: o for o in outcomes},
        )

"""Backlog state models and storage."""

from .backlog_store import BacklogStore
from .models import BacklogEstimate, BacklogFile, BacklogItem, DeliverySpec

__all__ = [
    "BacklogEstimate",
    "BacklogFile",
    "BacklogItem",
    "BacklogStore",
    "DeliverySpec",
]

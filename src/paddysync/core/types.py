"""Shared enums used across the resolver, stores and sync engine."""

from __future__ import annotations

from enum import Enum


class SyncStatus(str, Enum):
    """Synchronization state of a survey record.

    Records start as PENDING and are moved to SYNCED or FAILED by the
    batch sync engine. FAILED records stay eligible for later batches.
    """

    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"


class AreaLevel(str, Enum):
    """Administrative hierarchy levels, outermost first."""

    PROVINCE = "province"
    DISTRICT = "district"
    COMMUNE = "commune"

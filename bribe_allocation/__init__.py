"""Bribe allocation for governance vote rounds."""

from bribe_allocation.adapter import BribeAllocateComponent
from bribe_allocation.config import AllocationConfig
from bribe_allocation.engine import AllocationEngine
from bribe_allocation.exceptions import (
    AllocationError,
    ConvergenceError,
    DataUnavailable,
    DegenerateAllocation,
    MalformedChoiceLabel,
    PendingExternalVote,
    ThresholdNotMet,
)
from bribe_allocation.models import AllocationResult, Choice, Payout, ReflectionResult, VoteRecord

__all__ = [
    "AllocationConfig",
    "AllocationEngine",
    "AllocationError",
    "AllocationResult",
    "BribeAllocateComponent",
    "Choice",
    "ConvergenceError",
    "DataUnavailable",
    "DegenerateAllocation",
    "MalformedChoiceLabel",
    "Payout",
    "PendingExternalVote",
    "ReflectionResult",
    "ThresholdNotMet",
    "VoteRecord",
]

"""Error taxonomy for allocation runs.

All errors propagate to the caller. A run either completes or aborts
before any payout table is produced.
"""


class AllocationError(Exception):
    """Base class for every error raised by the allocation engine."""


class DataUnavailable(AllocationError):
    """Choice or vote data is empty or malformed."""


class MalformedChoiceLabel(DataUnavailable, ValueError):
    """A choice label does not end in a parenthesised chain name.

    Parameters
    ----------
    label : str
        The offending label.
    """

    def __init__(self, label: str) -> None:
        super().__init__(f"Choice label {label!r} does not contain a parenthesised chain name.")
        self.label = label


class ThresholdNotMet(AllocationError):
    """A sponsor choice is on a chain below the eligibility threshold."""


class DegenerateAllocation(AllocationError):
    """A positive budget has no qualifying backing power to be split over."""


class PendingExternalVote(AllocationError):
    """The reflection proxy has no payout in the primary allocation yet."""


class ConvergenceError(AllocationError):
    """Cap normalization did not converge within the iteration ceiling."""

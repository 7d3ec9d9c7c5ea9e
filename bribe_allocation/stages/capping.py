"""Iterative cap normalization.

No single choice may capture more than ``max_percent`` of the reward pool.
Each pass clips every percentage at the cap and rescales the clipped vector
back to 100%, which hands the excess to the remaining choices in proportion
to their own share. Passes repeat until no percentage exceeds the cap.
"""

import logging
from dataclasses import replace
from decimal import Decimal

from bribe_allocation._common import HUNDRED, TOLERANCE, ZERO
from bribe_allocation.exceptions import ConvergenceError
from bribe_allocation.models import ChoiceTotal

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 100


def cap_percentages(
    percentages: dict[str, Decimal],
    max_percent: Decimal,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> tuple[dict[str, Decimal], int]:
    """Clip and renormalize percentages until none exceeds ``max_percent``.

    Parameters
    ----------
    percentages : dict[str, Decimal]
        Percentages keyed by choice id, summing to 100 (or all zero).
    max_percent : Decimal
        Cap applied to every entry.
    max_iterations : int
        Maximum number of clip-and-rescale passes.

    Returns
    -------
    tuple[dict[str, Decimal], int]
        Normalized percentages and the number of passes performed.

    Raises
    ------
    ConvergenceError
        If a percentage still exceeds the cap after ``max_iterations`` passes,
        which happens whenever ``max_percent`` times the number of non-zero
        entries is below 100.
    """
    current = dict(percentages)
    iterations = 0
    while any(p > max_percent + TOLERANCE for p in current.values()):
        if iterations >= max_iterations:
            raise ConvergenceError(
                f"Cap normalization at {max_percent}% did not converge within {max_iterations} iterations "
                f"(max remaining {max(current.values())}%)."
            )
        capped = {cid: min(max_percent, p) for cid, p in current.items()}
        capped_sum = sum(capped.values(), ZERO)
        current = {cid: c / capped_sum * HUNDRED for cid, c in capped.items()}
        iterations += 1
        logger.debug("Cap pass %d: max percentage %s", iterations, max(current.values()))
    return current, iterations


def normalize_caps(
    choice_totals: list[ChoiceTotal],
    max_percent: Decimal | None,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> list[ChoiceTotal]:
    """Set ``capped_percentage`` on every choice total.

    Only eligible choices with a positive share take part; all others end
    at zero. Without a cap the eligible percentage is carried over.

    Parameters
    ----------
    choice_totals : list[ChoiceTotal]
        Totals annotated by the eligibility stage.
    max_percent : Decimal, optional
        Cap on any single choice's percentage.
    max_iterations : int
        Iteration ceiling passed to :func:`cap_percentages`.

    Returns
    -------
    list[ChoiceTotal]
        New totals; input is not mutated.
    """
    if not choice_totals:
        return []

    active = {
        t.choice.choice_id: t.eligible_percentage
        for t in choice_totals
        if t.is_eligible and t.eligible_percentage > 0
    }
    if max_percent is not None and active:
        active, iterations = cap_percentages(active, max_percent, max_iterations)
        logger.info("Cap normalization at %s%% converged after %d iteration(s)", max_percent, iterations)

    return [replace(t, capped_percentage=active.get(t.choice.choice_id, ZERO)) for t in choice_totals]

"""Budget rules and proportional apportionment.

A budget rule prices the sponsor choice(s) from their vote share and
collects every qualifying voter's backing power. :func:`apportion` then
splits the budget over those voters in proportion to their backing.
"""

import logging
from decimal import Decimal

from bribe_allocation._common import ZERO, percentage
from bribe_allocation.exceptions import DegenerateAllocation
from bribe_allocation.models import Backing, ChoiceTotal, Payout, VoteRecord
from bribe_allocation.stages._types import BudgetResult

logger = logging.getLogger(__name__)


def single_choice_backings(votes: list[VoteRecord], choice_id: str) -> list[Backing]:
    """Collect every voter with a positive share on ``choice_id``.

    Ballots with zero voting power are excluded.
    """
    backings = []
    for vote in votes:
        if vote.voting_power == 0:
            continue
        share = vote.share_of([choice_id])
        if share > 0:
            backings.append(Backing(vote.voter, vote.voting_power, share, vote.voting_power * share))
    return backings


def paired_choice_backings(votes: list[VoteRecord], choice_ids: tuple[str, str]) -> list[Backing]:
    """Collect voters that weight both choices of the pair exactly equally.

    A qualifying ballot's share is the sum of its fractions on the two
    choices. Ballots with zero voting power are excluded.
    """
    first, second = choice_ids
    backings = []
    for vote in votes:
        if vote.voting_power == 0:
            continue
        w_first = vote.weights.get(first, ZERO)
        w_second = vote.weights.get(second, ZERO)
        if w_first == 0 or w_first != w_second:
            continue
        share = vote.share_of(choice_ids)
        backings.append(Backing(vote.voter, vote.voting_power, share, vote.voting_power * share))
    return backings


def _apply_ceiling(budget: Decimal, ceiling: Decimal | None) -> Decimal:
    if ceiling is not None and budget > ceiling:
        logger.info("Budget %s exceeds ceiling, clipped to %s", budget, ceiling)
        return ceiling
    return budget


def _find_total(choice_totals: list[ChoiceTotal], choice_id: str) -> ChoiceTotal:
    for total in choice_totals:
        if total.choice.choice_id == choice_id:
            return total
    raise KeyError(choice_id)


class SingleChoiceBudget:
    """Budget rule for one sponsor choice.

    The budget is ``rate * min(capped %, cap %, raw %)``, so the sponsor is
    never charged for more than the smallest of its capped share, the
    configured ceiling, or its uncapped raw share.

    Parameters
    ----------
    choice_id : str
        Sponsor choice id.
    rate : Decimal
        Budget units per one percent of vote.
    max_percent : Decimal, optional
        Configured per-choice cap.
    budget_ceiling : Decimal, optional
        Hard ceiling on the total budget.
    """

    rule = "single_choice"

    def __init__(
        self,
        choice_id: str,
        rate: Decimal,
        max_percent: Decimal | None = None,
        budget_ceiling: Decimal | None = None,
    ) -> None:
        if rate < 0:
            raise ValueError("Rate must be non-negative.")
        self.choice_id = choice_id
        self.rate = rate
        self.max_percent = max_percent
        self.budget_ceiling = budget_ceiling

    def __call__(
        self,
        votes: list[VoteRecord],
        choice_totals: list[ChoiceTotal],
        total_votes: Decimal,
    ) -> BudgetResult:
        """Price the sponsor choice and collect its backers.

        Parameters
        ----------
        votes : list[VoteRecord]
            Ballots of the proposal.
        choice_totals : list[ChoiceTotal]
            Totals annotated by the eligibility and capping stages.
        total_votes : Decimal
            Sum of all votes.

        Returns
        -------
        BudgetResult
        """
        total = _find_total(choice_totals, self.choice_id)
        candidates = [total.capped_percentage, total.raw_percentage]
        if self.max_percent is not None:
            candidates.append(self.max_percent)
        priced_pct = min(candidates) if total.is_eligible else ZERO
        total_budget = _apply_ceiling(self.rate * priced_pct, self.budget_ceiling)
        return {
            "rule": self.rule,
            "total_budget": total_budget,
            "backings": single_choice_backings(votes, self.choice_id),
            "qualifying_percentage": priced_pct,
            "detail": {
                "raw_percentage": total.raw_percentage,
                "capped_percentage": total.capped_percentage,
                "is_eligible": total.is_eligible,
            },
        }


class PairedChoiceBudget:
    """Budget rule for a "50/50" pair of sponsor choices.

    Only ballots splitting exactly equal weight over both choices qualify.
    The budget is ``rate`` times the qualifying backing power as a
    percentage of all votes.

    Parameters
    ----------
    choice_ids : tuple[str, str]
        The two sponsor choice ids.
    rate : Decimal
        Budget units per one percent of vote.
    budget_ceiling : Decimal, optional
        Hard ceiling on the total budget.
    """

    rule = "paired_choice"

    def __init__(
        self,
        choice_ids: tuple[str, str],
        rate: Decimal,
        budget_ceiling: Decimal | None = None,
    ) -> None:
        if len(choice_ids) != 2 or choice_ids[0] == choice_ids[1]:
            raise ValueError("Paired mode needs exactly two distinct choices.")
        if rate < 0:
            raise ValueError("Rate must be non-negative.")
        self.choice_ids = tuple(choice_ids)
        self.rate = rate
        self.budget_ceiling = budget_ceiling

    def __call__(
        self,
        votes: list[VoteRecord],
        choice_totals: list[ChoiceTotal],
        total_votes: Decimal,
    ) -> BudgetResult:
        """Price the sponsor pair and collect its qualifying backers."""
        eligible = all(_find_total(choice_totals, cid).is_eligible for cid in self.choice_ids)
        backings = paired_choice_backings(votes, self.choice_ids)
        backing_power = sum((b.backing_power for b in backings), ZERO)
        qualifying_pct = percentage(backing_power, total_votes) if eligible else ZERO
        total_budget = _apply_ceiling(self.rate * qualifying_pct, self.budget_ceiling)
        return {
            "rule": self.rule,
            "total_budget": total_budget,
            "backings": backings,
            "qualifying_percentage": qualifying_pct,
            "detail": {"backing_power": backing_power, "is_eligible": eligible},
        }


def apportion(backings: list[Backing], total_budget: Decimal) -> list[Payout]:
    """Split ``total_budget`` over ``backings`` in proportion to backing power.

    Parameters
    ----------
    backings : list[Backing]
        Qualifying voters.
    total_budget : Decimal
        Budget to distribute.

    Returns
    -------
    list[Payout]
        One payout per backing, in input order. Empty when there is
        neither budget nor backing.

    Raises
    ------
    DegenerateAllocation
        If the budget is positive but the total backing power is zero.
    """
    total_backing = sum((b.backing_power for b in backings), ZERO)
    if total_backing == 0:
        if total_budget > 0:
            raise DegenerateAllocation(f"Budget of {total_budget} has no qualifying voters to be split over.")
        return []
    return [
        Payout(
            voter=b.voter,
            voting_power=b.voting_power,
            choice_share=b.choice_share,
            backing_power=b.backing_power,
            raw_bribe=b.backing_power / total_backing * total_budget,
        )
        for b in backings
    ]

"""Cross-proposal bribe derivation.

A proxy voter in the primary proposal represents the pool of voters of a
second ("reflection") proposal. The proxy's primary payout funds a
sub-allocation among the reflection voters who backed the mirrored
choice(s), apportioned by their backing power exactly like the primary
allocation.
"""

import logging
from decimal import Decimal

from bribe_allocation._common import ZERO, percentage
from bribe_allocation.exceptions import PendingExternalVote
from bribe_allocation.models import PENDING, SETTLED, Backing, Payout, ReflectionPayout, ReflectionResult, VoteRecord
from bribe_allocation.stages.budget import apportion, paired_choice_backings, single_choice_backings

logger = logging.getLogger(__name__)


def reflection_backings(votes: list[VoteRecord], choice_ids: tuple[str, ...]) -> list[Backing]:
    """Qualify reflection ballots with the same rule as the primary allocation."""
    if len(choice_ids) == 1:
        return single_choice_backings(votes, choice_ids[0])
    return paired_choice_backings(votes, (choice_ids[0], choice_ids[1]))


def realized_rate(proxy: Payout, primary_total_votes: Decimal) -> Decimal:
    """Budget per one percent of primary vote actually paid to the proxy."""
    proxy_pct = percentage(proxy.backing_power, primary_total_votes)
    if proxy_pct == 0:
        return ZERO
    return proxy.final_bribe / proxy_pct


def pending_reflection(
    votes: list[VoteRecord],
    choice_ids: tuple[str, ...],
    proxy_address: str,
    proposal_id: str | None = None,
) -> ReflectionResult:
    """Mark every reflection voter as pending, with no amount.

    Voters who did not back the mirrored choice(s) are listed with a zero
    choice share.
    """
    backings = {b.voter: b for b in reflection_backings(votes, choice_ids)}
    payouts = []
    for vote in votes:
        backing = backings.get(vote.voter)
        payouts.append(
            ReflectionPayout(
                voter=vote.voter,
                voting_power=vote.voting_power,
                choice_share=backing.choice_share if backing else ZERO,
                backing_power=backing.backing_power if backing else ZERO,
                raw_bribe=None,
                status=PENDING,
            )
        )
    return ReflectionResult(
        proposal_id=proposal_id,
        proxy_address=proxy_address,
        status=PENDING,
        total_budget=None,
        percent_bribed_of_pool=None,
        proxy_qualifying_percent=None,
        payouts=payouts,
    )


def derive_reflection(
    votes: list[VoteRecord],
    choice_ids: tuple[str, ...],
    proxy: Payout | None,
    primary_total_votes: Decimal,
    rate: Decimal | None = None,
    proxy_address: str | None = None,
    proposal_id: str | None = None,
) -> ReflectionResult:
    """Split the proxy's primary payout among the reflection voters.

    Parameters
    ----------
    votes : list[VoteRecord]
        Ballots of the reflection proposal.
    choice_ids : tuple[str, ...]
        Reflection choice id(s) mirroring the sponsor choice(s).
    proxy : Payout, optional
        The proxy's payout in the primary allocation.
    primary_total_votes : Decimal
        Sum of all votes of the primary proposal.
    rate : Decimal, optional
        Budget units per one percent of primary vote. Defaults to the
        proxy's realized rate.
    proxy_address : str, optional
        Address reported in the result; defaults to ``proxy.voter``.
    proposal_id : str, optional
        Reflection proposal identifier.

    Returns
    -------
    ReflectionResult

    Raises
    ------
    PendingExternalVote
        If the proxy did not vote in the primary proposal.
    DegenerateAllocation
        If a positive reflection budget has no qualifying voters.
    """
    if proxy is None:
        raise PendingExternalVote(f"Proxy {proxy_address} has not voted in the primary proposal yet.")

    backings = reflection_backings(votes, choice_ids)
    pool_power = sum((v.voting_power for v in votes if v.weight_sum > 0), ZERO)
    backing_power = sum((b.backing_power for b in backings), ZERO)
    percent_bribed = backing_power / pool_power if pool_power > 0 else ZERO

    proxy_pct = percentage(proxy.voting_power * percent_bribed, primary_total_votes)
    if rate is None:
        rate = realized_rate(proxy, primary_total_votes)
    # The sub-allocation is funded by the proxy's payout and cannot exceed it.
    total_budget = min(rate * proxy_pct, max(proxy.final_bribe, ZERO))

    logger.info(
        "Reflection pool: %s%% backed, proxy qualifying %s%%, budget %s",
        percent_bribed * 100,
        proxy_pct,
        total_budget,
    )
    payouts = [
        ReflectionPayout(
            voter=p.voter,
            voting_power=p.voting_power,
            choice_share=p.choice_share,
            backing_power=p.backing_power,
            raw_bribe=p.raw_bribe,
            status=SETTLED,
        )
        for p in apportion(backings, total_budget)
    ]
    return ReflectionResult(
        proposal_id=proposal_id,
        proxy_address=proxy_address or proxy.voter,
        status=SETTLED,
        total_budget=total_budget,
        percent_bribed_of_pool=percent_bribed,
        proxy_qualifying_percent=proxy_pct,
        payouts=payouts,
    )

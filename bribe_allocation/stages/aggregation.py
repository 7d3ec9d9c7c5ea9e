"""Vote aggregation.

Reduces per-voter weight vectors into per-choice and per-chain totals.
A ballot's voting power is split across its choices in proportion to its
weights, so every ballot contributes exactly its voting power in total.
"""

import logging
from collections.abc import Callable
from dataclasses import replace
from decimal import Decimal

from bribe_allocation._common import ZERO, normalize_address, percentage, to_decimal
from bribe_allocation.exceptions import DataUnavailable
from bribe_allocation.models import ChainTotal, Choice, ChoiceTotal, VoteRecord

logger = logging.getLogger(__name__)


def latest_votes(votes: list[VoteRecord]) -> list[VoteRecord]:
    """Keep one ballot per voter, preferring the most recent timestamp.

    Voters are matched case-insensitively. Output order follows the first
    appearance of each voter. Does not mutate input.
    """
    chosen: dict[str, VoteRecord] = {}
    for vote in votes:
        key = normalize_address(vote.voter)
        current = chosen.get(key)
        if current is None or (vote.timestamp or 0) > (current.timestamp or 0):
            chosen[key] = vote
    dropped = len(votes) - len(chosen)
    if dropped:
        logger.warning("Dropped %d superseded ballot(s)", dropped)
    return list(chosen.values())


def override_voting_power(
    votes: list[VoteRecord],
    balance_lookup: Callable[[str], Decimal],
) -> list[VoteRecord]:
    """Replace each ballot's voting power with an externally looked-up balance.

    Parameters
    ----------
    votes : list[VoteRecord]
        Ballots to re-weight.
    balance_lookup : Callable[[str], Decimal]
        Maps a voter address to its balance, e.g. an on-chain token lookup.

    Returns
    -------
    list[VoteRecord]
        New records with ``voting_power`` replaced.
    """
    return [replace(vote, voting_power=to_decimal(balance_lookup(vote.voter))) for vote in votes]


def aggregate_votes(votes: list[VoteRecord], choices: list[Choice]) -> tuple[dict[str, Decimal], Decimal]:
    """Apportion each ballot's voting power over its weighted choices.

    Parameters
    ----------
    votes : list[VoteRecord]
        Ballots of the proposal.
    choices : list[Choice]
        Choices of the proposal.

    Returns
    -------
    tuple[dict[str, Decimal], Decimal]
        ``(raw_votes, total_votes)``: votes per choice id (every choice
        present, in choice order) and their sum.

    Raises
    ------
    DataUnavailable
        If a ballot weights a choice id that is not part of ``choices``.
    """
    raw_votes = {choice.choice_id: ZERO for choice in choices}
    abstentions = 0
    for vote in votes:
        weight_sum = vote.weight_sum
        if weight_sum == 0:
            abstentions += 1
            continue
        for choice_id, weight in vote.weights.items():
            if choice_id not in raw_votes:
                raise DataUnavailable(f"Vote by {vote.voter} references unknown choice {choice_id!r}.")
            raw_votes[choice_id] += vote.voting_power * weight / weight_sum
    if abstentions:
        logger.warning("Skipped %d ballot(s) with zero total weight", abstentions)
    total_votes = sum(raw_votes.values(), ZERO)
    return raw_votes, total_votes


def build_choice_totals(votes: list[VoteRecord], choices: list[Choice]) -> tuple[list[ChoiceTotal], Decimal]:
    """Aggregate votes into :class:`ChoiceTotal` records.

    Returns
    -------
    tuple[list[ChoiceTotal], Decimal]
        Totals in choice order, and the sum of all votes.
    """
    raw_votes, total_votes = aggregate_votes(votes, choices)
    totals = [
        ChoiceTotal(
            choice=choice,
            raw_votes=raw_votes[choice.choice_id],
            raw_percentage=percentage(raw_votes[choice.choice_id], total_votes),
        )
        for choice in choices
    ]
    logger.info("Aggregated %d ballot(s) over %d choice(s): total votes %s", len(votes), len(choices), total_votes)
    return totals, total_votes


def aggregate_chains(choice_totals: list[ChoiceTotal]) -> list[ChainTotal]:
    """Sum raw percentages per chain, sorted descending by percentage.

    Raises
    ------
    MalformedChoiceLabel
        If a choice label carries no chain name.
    """
    chains: dict[str, Decimal] = {}
    for total in choice_totals:
        chain = total.choice.chain
        chains[chain] = chains.get(chain, ZERO) + total.raw_percentage
    return sorted(
        (ChainTotal(chain=chain, percentage=pct) for chain, pct in chains.items()),
        key=lambda c: (-c.percentage, c.chain),
    )

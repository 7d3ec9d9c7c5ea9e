"""Whale clawback and redistribution.

Payouts of voters above the voting-power threshold are clawed back in
full. A configured fraction of the clawed-back amount is handed to the
voters at or below the threshold in proportion to their backing of the
sponsor choice; the rest leaves the budget. Forced-zero addresses always
end at zero and never receive redistribution.
"""

import logging
from collections.abc import Collection
from dataclasses import replace
from decimal import Decimal

from bribe_allocation._common import HUNDRED, ZERO, normalize_address
from bribe_allocation.models import Payout

logger = logging.getLogger(__name__)


def adjust_whales(
    payouts: list[Payout],
    threshold: Decimal | None,
    redistribution_fraction: Decimal = ZERO,
    exempt_addresses: Collection[str] = frozenset(),
    forced_zero_addresses: Collection[str] = frozenset(),
) -> tuple[list[Payout], Decimal, Decimal]:
    """Apply clawback, redistribution and forced zeroing.

    Parameters
    ----------
    payouts : list[Payout]
        Payouts from the apportionment stage.
    threshold : Decimal, optional
        Voting power above which a voter is clawed back. ``None`` disables
        clawback.
    redistribution_fraction : Decimal
        Percentage (0-100) of the clawed-back amount to redistribute.
    exempt_addresses : Collection[str]
        Lower-case addresses never clawed back. Exempt voters above the
        threshold keep their payout but receive no redistribution.
    forced_zero_addresses : Collection[str]
        Lower-case addresses whose payout is forced to zero.

    Returns
    -------
    tuple[list[Payout], Decimal, Decimal]
        ``(adjusted_payouts, clawed_back, redistributed)``. Input is not
        mutated.
    """
    clawed_back = ZERO
    whales: set[int] = set()
    recipients: set[int] = set()
    forced: set[int] = set()

    for idx, payout in enumerate(payouts):
        address = normalize_address(payout.voter)
        above = threshold is not None and payout.voting_power > threshold
        if above and address not in exempt_addresses:
            whales.add(idx)
            clawed_back += payout.raw_bribe
        if address in forced_zero_addresses:
            forced.add(idx)
        elif not above:
            recipients.add(idx)

    pool = clawed_back * redistribution_fraction / HUNDRED
    recipient_backing = sum((payouts[i].backing_power for i in recipients), ZERO)
    if pool > 0 and recipient_backing == 0:
        logger.warning("Clawed back %s but no voter is eligible for redistribution", clawed_back)

    adjusted = []
    redistributed = ZERO
    for idx, payout in enumerate(payouts):
        if idx in forced or idx in whales:
            adjustment = -payout.raw_bribe
        elif idx in recipients and recipient_backing > 0:
            adjustment = payout.backing_power / recipient_backing * pool
            redistributed += adjustment
        else:
            adjustment = ZERO
        adjusted.append(replace(payout, whale_adjustment=adjustment))

    if whales or forced:
        logger.info(
            "Clawed back %s from %d whale(s), redistributed %s, forced %d payout(s) to zero",
            clawed_back,
            len(whales),
            redistributed,
            len(forced),
        )
    return adjusted, clawed_back, redistributed

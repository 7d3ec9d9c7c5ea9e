"""Per-chain eligibility gating.

Chains whose aggregate vote share is below the threshold forfeit the
round: their choices keep their raw totals for reporting but count as
zero in every later percentage.
"""

import logging
from dataclasses import replace
from decimal import Decimal

from bribe_allocation._common import ZERO, percentage
from bribe_allocation.models import ChainTotal, ChoiceTotal

logger = logging.getLogger(__name__)


def apply_eligibility(
    choice_totals: list[ChoiceTotal],
    chain_totals: list[ChainTotal],
    min_chain_percentage: Decimal,
) -> list[ChoiceTotal]:
    """Zero out choices on chains below ``min_chain_percentage``.

    Parameters
    ----------
    choice_totals : list[ChoiceTotal]
        Totals from the aggregation stage.
    chain_totals : list[ChainTotal]
        Per-chain raw percentages.
    min_chain_percentage : Decimal
        Minimum chain percentage required to stay eligible.

    Returns
    -------
    list[ChoiceTotal]
        New totals with ``is_eligible``, ``eligible_votes`` and
        ``eligible_percentage`` set. Does not mutate input.
    """
    chain_pct = {c.chain: c.percentage for c in chain_totals}
    failed = sorted(chain for chain, pct in chain_pct.items() if pct < min_chain_percentage)
    if failed:
        logger.info("Chains below %s%% threshold: %s", min_chain_percentage, ", ".join(failed))

    flagged = []
    for total in choice_totals:
        eligible = chain_pct[total.choice.chain] >= min_chain_percentage
        flagged.append(replace(total, is_eligible=eligible, eligible_votes=total.raw_votes if eligible else ZERO))

    eligible_total = sum((t.eligible_votes for t in flagged), ZERO)
    return [replace(t, eligible_percentage=percentage(t.eligible_votes, eligible_total)) for t in flagged]

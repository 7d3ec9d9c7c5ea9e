"""Output tables and the bulk-disbursement export format."""

from collections.abc import Iterable
from decimal import ROUND_DOWN, Decimal, localcontext
from typing import Any

from bribe_allocation._common import DECIMAL_PRECISION, HUNDRED
from bribe_allocation.models import AllocationResult, Payout, ReflectionPayout

DEFAULT_EXPORT_PRECISION = 10


def quantize(value: Decimal, places: int) -> Decimal:
    """Round ``value`` down to ``places`` fractional digits.

    The context precision is widened to hold every integer digit of ``value``.
    """
    with localcontext() as ctx:
        ctx.prec = max(DECIMAL_PRECISION, value.adjusted() + places + 2)
        return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_DOWN)


def choice_table(result: AllocationResult) -> list[dict[str, Any]]:
    """Per-choice totals sorted descending by votes."""
    rows = [
        {
            "choice": t.choice.label,
            "votes": t.raw_votes,
            "percentage": t.raw_percentage,
            "capped_percentage": t.capped_percentage,
            "is_eligible": t.is_eligible,
        }
        for t in result.choice_totals
    ]
    return sorted(rows, key=lambda r: r["votes"], reverse=True)


def chain_table(result: AllocationResult) -> list[dict[str, Any]]:
    """Per-chain percentages sorted descending."""
    return [{"chain": c.chain, "percentage": c.percentage} for c in result.chain_totals]


def payout_table(payouts: Iterable[Payout | ReflectionPayout]) -> list[dict[str, Any]]:
    """Per-voter payouts sorted descending by bribe; pending amounts are ``None``."""
    rows = [
        {
            "voter": p.voter,
            "voting_power": p.voting_power,
            "choice_share_percent": p.choice_share * HUNDRED,
            "bribe_amount": p.final_bribe,
        }
        for p in payouts
    ]
    settled = [r for r in rows if r["bribe_amount"] is not None]
    pending = [r for r in rows if r["bribe_amount"] is None]
    return sorted(settled, key=lambda r: r["bribe_amount"], reverse=True) + pending


def export_lines(
    payouts: Iterable[Payout | ReflectionPayout],
    precision: int = DEFAULT_EXPORT_PRECISION,
) -> list[str]:
    """Render ``address=amount`` lines for bulk disbursement.

    Amounts are rounded down to ``precision`` fractional digits. Payouts
    that are pending or round to zero are left out.

    Parameters
    ----------
    payouts : Iterable[Payout | ReflectionPayout]
        Payouts to export, in output order.
    precision : int
        Fractional digits of each amount.

    Returns
    -------
    list[str]
    """
    lines = []
    for payout in payouts:
        amount = payout.final_bribe
        if amount is None:
            continue
        amount = quantize(amount, precision)
        if amount > 0:
            lines.append(f"{payout.voter}={amount:f}")
    return lines

"""Type definitions for the budget rule protocol and result contract."""

from decimal import Decimal
from typing import Any, Protocol, TypedDict

from bribe_allocation.models import Backing, ChoiceTotal, VoteRecord


class BudgetResult(TypedDict):
    """Common output contract all budget rules must satisfy.

    Parameters
    ----------
    rule : str
        Identifier of the budget rule (e.g. ``"single_choice"``).
    total_budget : Decimal
        Budget to be apportioned among ``backings``.
    backings : list[Backing]
        Qualifying voters with their backing power.
    qualifying_percentage : Decimal
        Vote percentage the budget was priced on.
    detail : dict[str, Any]
        Rule-specific diagnostics.
    """

    rule: str
    total_budget: Decimal
    backings: list[Backing]
    qualifying_percentage: Decimal
    detail: dict[str, Any]


class BudgetRule(Protocol):
    """Protocol for budget rules.

    Implementations receive the annotated choice totals and return a
    :class:`BudgetResult` pricing the sponsor choice(s).
    """

    def __call__(
        self,
        votes: list[VoteRecord],
        choice_totals: list[ChoiceTotal],
        total_votes: Decimal,
    ) -> BudgetResult: ...

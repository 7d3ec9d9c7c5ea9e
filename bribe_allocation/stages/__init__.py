"""Allocation pipeline stages.

Provides one module per stage (aggregation, eligibility, capping, budget,
whale adjustment, reflection), the ``BudgetRule`` protocol that both budget
modes satisfy, and the ``BudgetResult`` contract they return.
"""

from bribe_allocation.stages._types import BudgetResult, BudgetRule
from bribe_allocation.stages.aggregation import (
    aggregate_chains,
    aggregate_votes,
    build_choice_totals,
    latest_votes,
    override_voting_power,
)
from bribe_allocation.stages.budget import (
    PairedChoiceBudget,
    SingleChoiceBudget,
    apportion,
    paired_choice_backings,
    single_choice_backings,
)
from bribe_allocation.stages.capping import cap_percentages, normalize_caps
from bribe_allocation.stages.eligibility import apply_eligibility
from bribe_allocation.stages.reflection import derive_reflection, pending_reflection, realized_rate
from bribe_allocation.stages.whale import adjust_whales

__all__ = [
    "BudgetResult",
    "BudgetRule",
    "PairedChoiceBudget",
    "SingleChoiceBudget",
    "adjust_whales",
    "aggregate_chains",
    "aggregate_votes",
    "apply_eligibility",
    "apportion",
    "build_choice_totals",
    "cap_percentages",
    "derive_reflection",
    "latest_votes",
    "normalize_caps",
    "override_voting_power",
    "paired_choice_backings",
    "pending_reflection",
    "realized_rate",
    "single_choice_backings",
]

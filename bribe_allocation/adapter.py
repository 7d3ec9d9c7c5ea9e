"""ALLOCATE component: bribe allocation for a vote-hub event."""

import logging
from collections.abc import Mapping
from decimal import Decimal
from typing import Any, Protocol

from bribe_allocation._common import to_decimal
from bribe_allocation.config import AllocationConfig
from bribe_allocation.engine import AllocationEngine
from bribe_allocation.exceptions import DataUnavailable
from bribe_allocation.export import chain_table, choice_table, export_lines, payout_table
from bribe_allocation.models import Choice, ReflectionResult, VoteRecord, choices_from_labels
from bribe_allocation.stages import BudgetRule

logger = logging.getLogger(__name__)


class PipelineComponent(Protocol):
    """Structural interface for pipeline stage components."""

    def execute(self, event: dict) -> dict:
        """Process event and return result."""
        ...


_FIELD_MAP_IN: dict[str, str] = {
    "vp": "voting_power",
    "votingPower": "voting_power",
    "choice": "weights",
    "choiceWeights": "weights",
    "created": "timestamp",
}


def _to_weights(choice: Any) -> dict[str, Decimal]:
    """Normalize a hub ``choice`` field to a weight mapping.

    A single-choice ballot (``3``) becomes ``{"3": 1}``, an approval ballot
    (``[1, 3]``) weights each listed choice equally, and a weighted ballot
    keeps its mapping.
    """
    if isinstance(choice, Mapping):
        return {str(cid): to_decimal(weight) for cid, weight in choice.items()}
    if isinstance(choice, (list, tuple)):
        return {str(cid): Decimal(1) for cid in choice}
    if isinstance(choice, bool) or not isinstance(choice, (int, str)):
        raise TypeError(f"Unsupported choice value: {choice!r}")
    return {str(choice): Decimal(1)}


def vote_from_raw(raw: Mapping[str, Any]) -> VoteRecord:
    """Map a vote-hub record to a :class:`VoteRecord`.

    Parameters
    ----------
    raw : Mapping[str, Any]
        Record with ``voter``, ``vp``, ``choice`` and optionally ``created``
        (the camelCase names ``votingPower`` / ``choiceWeights`` /
        ``timestamp`` are accepted as well).

    Returns
    -------
    VoteRecord

    Raises
    ------
    DataUnavailable
        If the record is missing fields or holds invalid values.
    """
    fields = {_FIELD_MAP_IN.get(key, key): value for key, value in raw.items()}
    try:
        timestamp = fields.get("timestamp")
        return VoteRecord(
            voter=str(fields["voter"]),
            voting_power=to_decimal(fields["voting_power"]),
            weights=_to_weights(fields["weights"]),
            timestamp=int(timestamp) if timestamp is not None else None,
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise DataUnavailable(f"Malformed vote record {dict(raw)!r}: {exc}") from exc


def _parse_round(event: Mapping[str, Any], name: str) -> tuple[list[Choice], list[VoteRecord]]:
    labels = event.get("choices")
    votes = event.get("votes")
    if not labels:
        raise DataUnavailable(f"No choices in {name} event.")
    if not votes:
        raise DataUnavailable(f"No votes in {name} event.")
    return choices_from_labels(list(labels)), [vote_from_raw(v) for v in votes]


def _serialize_reflection(reflection: ReflectionResult, precision: int) -> dict[str, Any]:
    return {
        "proposal_id": reflection.proposal_id,
        "proxy_address": reflection.proxy_address,
        "status": reflection.status,
        "total_budget": reflection.total_budget,
        "percent_bribed_of_pool": reflection.percent_bribed_of_pool,
        "proxy_qualifying_percent": reflection.proxy_qualifying_percent,
        "payouts": payout_table(reflection.payouts),
        "export": export_lines(reflection.payouts, precision),
    }


class BribeAllocateComponent(PipelineComponent):
    """Allocate a bribe budget over the voters of a proposal.

    Handles field mapping of raw vote-hub records, then delegates the
    computation to an :class:`AllocationEngine` and serializes its tables.

    Parameters
    ----------
    config : AllocationConfig
        Run configuration.
    budget_rule : BudgetRule, optional
        Overrides the rule derived from ``config``.
    """

    def __init__(self, config: AllocationConfig, budget_rule: BudgetRule | None = None) -> None:
        self.config = config
        self._engine = AllocationEngine(config, budget_rule=budget_rule)

    def execute(self, event: dict) -> dict:
        """Run the allocation and return its output tables.

        Parameters
        ----------
        event : dict
            Must contain ``choices`` (ordered labels, first choice first) and
            ``votes`` (vote-hub records). May contain ``reflection`` with the
            same two keys for the reflection proposal.

        Returns
        -------
        dict
            ``proposal_id``, ``rule``, ``total_votes``, ``total_budget``,
            ``choice_totals``, ``chain_totals``, ``payouts``, ``clawed_back``,
            ``redistributed``, ``export`` and ``reflection`` (``None`` when no
            reflection round ran).
        """
        precision = self.config.export_precision
        choices, votes = _parse_round(event, "primary")
        result = self._engine.run(votes, choices)

        output = {
            "proposal_id": result.proposal_id,
            "rule": result.rule,
            "total_votes": result.total_votes,
            "total_budget": result.total_budget,
            "choice_totals": choice_table(result),
            "chain_totals": chain_table(result),
            "payouts": payout_table(result.payouts),
            "clawed_back": result.clawed_back,
            "redistributed": result.redistributed,
            "export": export_lines(result.payouts, precision),
            "reflection": None,
        }

        reflection_event = event.get("reflection")
        if reflection_event is not None and self.config.has_reflection:
            r_choices, r_votes = _parse_round(reflection_event, "reflection")
            reflection = self._engine.derive_reflection(result, r_votes, r_choices)
            if reflection.pending:
                logger.warning(
                    "Reflection payouts pending for %d voter(s); excluded from export",
                    len(reflection.payouts),
                )
            output["reflection"] = _serialize_reflection(reflection, precision)

        logger.info("Allocation event complete: %d payout line(s)", len(output["export"]))
        return output

"""The allocation engine: one parameterized six-stage pipeline.

Raw ballots flow through aggregation, eligibility gating, cap
normalization, budget pricing with proportional apportionment, and whale
adjustment. A reflection proposal can then be derived from the proxy's
payout. All proposal-specific constants come from one
:class:`~bribe_allocation.config.AllocationConfig`.
"""

import logging
from collections.abc import Callable
from decimal import Decimal, localcontext

from bribe_allocation._common import DECIMAL_PRECISION, ZERO, normalize_address
from bribe_allocation.config import AllocationConfig
from bribe_allocation.exceptions import DataUnavailable, PendingExternalVote, ThresholdNotMet
from bribe_allocation.models import AllocationResult, Choice, Payout, ReflectionResult, VoteRecord
from bribe_allocation.stages import (
    BudgetRule,
    PairedChoiceBudget,
    SingleChoiceBudget,
    adjust_whales,
    aggregate_chains,
    apply_eligibility,
    apportion,
    build_choice_totals,
    derive_reflection,
    latest_votes,
    normalize_caps,
    override_voting_power,
    pending_reflection,
)

logger = logging.getLogger(__name__)


def resolve_choice_ids(choices: list[Choice], labels: tuple[str, ...]) -> tuple[str, ...]:
    """Map configured choice labels (or ids) to the proposal's choice ids.

    Raises
    ------
    DataUnavailable
        If a label matches no choice of the proposal.
    """
    by_label = {c.label: c.choice_id for c in choices}
    ids = {c.choice_id for c in choices}
    resolved = []
    for label in labels:
        if label in by_label:
            resolved.append(by_label[label])
        elif label in ids:
            resolved.append(label)
        else:
            raise DataUnavailable(f"Choice {label!r} is not part of the proposal.")
    return tuple(resolved)


class AllocationEngine:
    """Compute bribe payouts from a frozen snapshot of votes.

    Parameters
    ----------
    config : AllocationConfig
        Immutable run configuration.
    budget_rule : BudgetRule, optional
        Overrides the rule derived from ``config`` (single-choice for one
        sponsor choice, paired for two).
    """

    def __init__(self, config: AllocationConfig, budget_rule: BudgetRule | None = None) -> None:
        self.config = config
        self._budget_rule = budget_rule

    def _make_rule(self, sponsor_ids: tuple[str, ...]) -> BudgetRule:
        cfg = self.config
        if self._budget_rule is not None:
            return self._budget_rule
        if len(sponsor_ids) == 1:
            return SingleChoiceBudget(
                sponsor_ids[0],
                cfg.rate_per_one_percent,
                max_percent=cfg.max_choice_percentage_cap,
                budget_ceiling=cfg.max_total_budget,
            )
        return PairedChoiceBudget(
            (sponsor_ids[0], sponsor_ids[1]),
            cfg.rate_per_one_percent,
            budget_ceiling=cfg.max_total_budget,
        )

    def run(
        self,
        votes: list[VoteRecord],
        choices: list[Choice],
        balance_lookup: Callable[[str], Decimal] | None = None,
    ) -> AllocationResult:
        """Run the primary allocation.

        Parameters
        ----------
        votes : list[VoteRecord]
            Ballots of the primary proposal.
        choices : list[Choice]
            Choices of the primary proposal.
        balance_lookup : Callable[[str], Decimal], optional
            Replaces every ballot's voting power with the returned balance.

        Returns
        -------
        AllocationResult

        Raises
        ------
        DataUnavailable
            If choices or votes are empty or malformed.
        ThresholdNotMet
            If a sponsor choice sits on an ineligible chain and the config
            does not allow it.
        ConvergenceError
            If cap normalization does not converge.
        DegenerateAllocation
            If a positive budget has no qualifying voters.
        """
        cfg = self.config
        if not choices:
            raise DataUnavailable(f"No choices for proposal {cfg.proposal_id}.")
        if not votes:
            raise DataUnavailable(f"No votes for proposal {cfg.proposal_id}.")

        with localcontext() as ctx:
            ctx.prec = DECIMAL_PRECISION

            votes = latest_votes(votes)
            if balance_lookup is not None:
                votes = override_voting_power(votes, balance_lookup)

            choice_totals, total_votes = build_choice_totals(votes, choices)
            if total_votes == 0:
                raise DataUnavailable(f"Votes for proposal {cfg.proposal_id} carry no voting power.")
            chain_totals = aggregate_chains(choice_totals)
            choice_totals = apply_eligibility(choice_totals, chain_totals, cfg.min_chain_percentage_threshold)

            sponsor_ids = resolve_choice_ids(choices, cfg.sponsor_choices)
            ineligible = [t.choice.label for t in choice_totals if t.choice.choice_id in sponsor_ids and not t.is_eligible]
            if ineligible:
                message = f"Sponsor choice(s) {', '.join(ineligible)} below the chain threshold"
                if not cfg.allow_ineligible_sponsor:
                    raise ThresholdNotMet(message + ".")
                logger.warning("%s; proceeding with a zero budget", message)

            choice_totals = normalize_caps(choice_totals, cfg.max_choice_percentage_cap, cfg.max_cap_iterations)

            rule = self._make_rule(sponsor_ids)
            budget = rule(votes, choice_totals, total_votes)
            payouts = apportion(budget["backings"], budget["total_budget"])
            payouts, clawed_back, redistributed = adjust_whales(
                payouts,
                cfg.whale_voting_power_threshold,
                cfg.whale_redistribution_fraction,
                cfg.whale_exempt_addresses,
                cfg.forced_zero_addresses,
            )

        result = AllocationResult(
            proposal_id=cfg.proposal_id,
            rule=budget["rule"],
            total_votes=total_votes,
            choice_totals=choice_totals,
            chain_totals=chain_totals,
            total_budget=budget["total_budget"],
            payouts=payouts,
            clawed_back=clawed_back,
            redistributed=redistributed,
            voter_power={normalize_address(v.voter): v.voting_power for v in votes},
        )
        logger.info(
            "Allocation complete: rule=%s, budget=%s, payouts=%d, paid=%s",
            result.rule,
            result.total_budget,
            len(payouts),
            result.total_paid,
        )
        return result

    def derive_reflection(
        self,
        primary: AllocationResult,
        votes: list[VoteRecord],
        choices: list[Choice],
    ) -> ReflectionResult:
        """Split the proxy's primary payout among the reflection voters.

        A proxy that did not vote in the primary proposal yields a pending
        result in which every reflection voter carries no amount. A proxy that
        voted without backing the sponsor choice(s) settles with a zero budget.

        Parameters
        ----------
        primary : AllocationResult
            Result of :meth:`run` on the primary proposal.
        votes : list[VoteRecord]
            Ballots of the reflection proposal.
        choices : list[Choice]
            Choices of the reflection proposal.

        Returns
        -------
        ReflectionResult

        Raises
        ------
        ValueError
            If the config names no reflection proxy.
        DataUnavailable
            If the reflection choices are missing from ``choices``.
        """
        cfg = self.config
        if not cfg.has_reflection:
            raise ValueError("No reflection proxy configured.")
        if not choices:
            raise DataUnavailable(f"No choices for reflection proposal {cfg.reflection_proposal_id}.")

        with localcontext() as ctx:
            ctx.prec = DECIMAL_PRECISION
            votes = latest_votes(votes)
            choice_ids = resolve_choice_ids(choices, cfg.reflection_choices)
            proxy = primary.payout_for(cfg.reflection_proxy_address)
            if proxy is None and primary.voted(cfg.reflection_proxy_address):
                # Voted without backing the sponsor choice(s): settles with nothing to pass on.
                proxy = Payout(
                    voter=cfg.reflection_proxy_address,
                    voting_power=primary.voter_power[cfg.reflection_proxy_address],
                    choice_share=ZERO,
                    backing_power=ZERO,
                    raw_bribe=ZERO,
                )
            rate = cfg.rate_per_one_percent if cfg.reflection_rate_source == "config" else None
            try:
                return derive_reflection(
                    votes,
                    choice_ids,
                    proxy,
                    primary.total_votes,
                    rate=rate,
                    proxy_address=cfg.reflection_proxy_address,
                    proposal_id=cfg.reflection_proposal_id,
                )
            except PendingExternalVote as exc:
                logger.warning("Reflection round pending: %s", exc)
                return pending_reflection(votes, choice_ids, cfg.reflection_proxy_address, cfg.reflection_proposal_id)

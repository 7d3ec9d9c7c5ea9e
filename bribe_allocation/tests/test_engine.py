"""End-to-end tests for the allocation engine."""

import logging
from dataclasses import replace
from decimal import Decimal

import pytest

from bribe_allocation.config import AllocationConfig
from bribe_allocation.engine import AllocationEngine
from bribe_allocation.exceptions import ConvergenceError, DataUnavailable, ThresholdNotMet
from bribe_allocation.models import choices_from_labels
from bribe_allocation.stages import SingleChoiceBudget

EPS = Decimal("1e-20")


def _amounts(result):
    return {p.voter: p.final_bribe for p in result.payouts}


class TestSingleChoiceRun:
    def test_totals(self, sample_config, sample_votes, sample_choices):
        result = AllocationEngine(sample_config).run(sample_votes, sample_choices)
        assert result.total_votes == Decimal(1000)
        assert [c.chain for c in result.chain_totals] == ["Optimism", "Arbitrum", "Base"]
        by_label = {t.choice.label: t for t in result.choice_totals}
        assert not by_label["DAI (Base)"].is_eligible
        assert abs(by_label["WBTC (Arbitrum)"].capped_percentage - 40) < Decimal("1e-9")
        assert abs(by_label["USDC (Optimism)"].capped_percentage - 60) < Decimal("1e-9")

    def test_budget_priced_on_raw_share(self, sample_config, sample_votes, sample_choices):
        result = AllocationEngine(sample_config).run(sample_votes, sample_choices)
        assert result.rule == "single_choice"
        assert result.total_budget == Decimal(250)

    def test_payouts(self, sample_config, sample_votes, sample_choices):
        result = AllocationEngine(sample_config).run(sample_votes, sample_choices)
        assert _amounts(result) == {"0xAlice": Decimal(100), "0xBob": Decimal(150)}
        assert result.payout_for("0xbob").choice_share == Decimal("0.5")
        assert result.payout_for(" 0xBOB ").voter == "0xBob"

    def test_voter_power_covers_every_ballot(self, sample_config, sample_votes, sample_choices):
        result = AllocationEngine(sample_config).run(sample_votes, sample_choices)
        assert result.voter_power["0xcarol"] == Decimal(400)
        assert result.voted("0xErin")
        assert not result.voted("0xNobody")

    def test_zero_voting_power_excluded(self, sample_config, sample_votes, sample_choices):
        result = AllocationEngine(sample_config).run(sample_votes, sample_choices)
        assert result.payout_for("0xErin") is None

    def test_whale_clawback(self, sample_config, sample_votes, sample_choices):
        config = replace(
            sample_config,
            whale_voting_power_threshold=Decimal(200),
            whale_redistribution_fraction=Decimal(50),
        )
        result = AllocationEngine(config).run(sample_votes, sample_choices)
        assert result.clawed_back == Decimal(150)
        assert _amounts(result) == {"0xAlice": Decimal(175), "0xBob": Decimal(0)}
        assert result.total_paid == result.total_budget - Decimal(150) * Decimal("0.5")

    def test_budget_ceiling(self, sample_config, sample_votes, sample_choices):
        config = replace(sample_config, max_total_budget=Decimal(50))
        result = AllocationEngine(config).run(sample_votes, sample_choices)
        assert result.total_budget == Decimal(50)
        assert result.total_paid <= Decimal(50)

    def test_idempotent(self, sample_config, sample_votes, sample_choices):
        config = replace(sample_config, whale_voting_power_threshold=Decimal(200), whale_redistribution_fraction=Decimal(30))
        engine = AllocationEngine(config)
        assert engine.run(sample_votes, sample_choices) == engine.run(sample_votes, sample_choices)

    def test_injected_budget_rule(self, sample_config, sample_votes, sample_choices):
        rule = SingleChoiceBudget("3", Decimal(1))
        result = AllocationEngine(sample_config, budget_rule=rule).run(sample_votes, sample_choices)
        assert set(_amounts(result)) == {"0xBob", "0xCarol"}


class TestEligibilityGating:
    def test_ineligible_sponsor_raises(self, sample_config, sample_votes, sample_choices):
        config = replace(sample_config, sponsor_choices=("DAI (Base)",))
        with pytest.raises(ThresholdNotMet, match="DAI"):
            AllocationEngine(config).run(sample_votes, sample_choices)

    def test_override_pays_zero(self, sample_config, sample_votes, sample_choices, caplog):
        config = replace(sample_config, sponsor_choices=("DAI (Base)",), allow_ineligible_sponsor=True)
        with caplog.at_level(logging.WARNING, logger="bribe_allocation.engine"):
            result = AllocationEngine(config).run(sample_votes, sample_choices)
        assert result.total_budget == 0
        assert [p.voter for p in result.payouts] == ["0xDave"]
        assert all(p.final_bribe == 0 for p in result.payouts)
        assert "zero budget" in caplog.text

    def test_three_chain_scenario(self, make_vote):
        choices = choices_from_labels(["X (A)", "Y (B)", "Z (C)"])
        votes = [
            make_vote("0xa", 30, {"1": 1}),
            make_vote("0xb", 50, {"2": 1}),
            make_vote("0xc", 20, {"3": 1}),
        ]
        config = AllocationConfig(
            proposal_id="p",
            sponsor_choices=("Z (C)",),
            rate_per_one_percent=Decimal(1),
            min_chain_percentage_threshold=Decimal(25),
            allow_ineligible_sponsor=True,
        )
        result = AllocationEngine(config).run(votes, choices)
        assert result.choice_totals[2].eligible_votes == 0
        assert _amounts(result) == {"0xc": Decimal(0)}


class TestPairedRun:
    def test_equal_split_voters_paid(self, sample_votes, sample_choices):
        config = AllocationConfig(
            proposal_id="p",
            sponsor_choices=("WBTC (Arbitrum)", "USDC (Optimism)"),
            rate_per_one_percent=Decimal(10),
        )
        result = AllocationEngine(config).run(sample_votes, sample_choices)
        assert result.rule == "paired_choice"
        assert result.total_budget == Decimal(300)
        assert _amounts(result) == {"0xBob": Decimal(300)}


class TestRunInputs:
    def test_no_votes(self, sample_config, sample_choices):
        with pytest.raises(DataUnavailable, match="No votes"):
            AllocationEngine(sample_config).run([], sample_choices)

    def test_no_choices(self, sample_config, sample_votes):
        with pytest.raises(DataUnavailable, match="No choices"):
            AllocationEngine(sample_config).run(sample_votes, [])

    def test_no_voting_power(self, sample_config, sample_choices, make_vote):
        with pytest.raises(DataUnavailable, match="no voting power"):
            AllocationEngine(sample_config).run([make_vote("0xa", 0, {"1": 1})], sample_choices)

    def test_unknown_sponsor(self, sample_config, sample_votes, sample_choices):
        config = replace(sample_config, sponsor_choices=("LINK (Arbitrum)",))
        with pytest.raises(DataUnavailable, match="LINK"):
            AllocationEngine(config).run(sample_votes, sample_choices)

    def test_sponsor_by_choice_id(self, sample_config, sample_votes, sample_choices):
        config = replace(sample_config, sponsor_choices=("1",))
        result = AllocationEngine(config).run(sample_votes, sample_choices)
        assert result.total_budget == Decimal(250)

    def test_infeasible_cap(self, sample_config, sample_votes, sample_choices):
        config = replace(sample_config, max_choice_percentage_cap=Decimal(40))
        with pytest.raises(ConvergenceError):
            AllocationEngine(config).run(sample_votes, sample_choices)

    def test_latest_ballot_wins(self, sample_config, sample_votes, sample_choices, make_vote):
        config = replace(sample_config, min_chain_percentage_threshold=Decimal(0))
        votes = sample_votes + [make_vote("0xalice", 100, {"3": 1}, timestamp=10)]
        result = AllocationEngine(config).run(votes, sample_choices)
        assert result.payout_for("0xAlice") is None
        assert result.total_budget == Decimal(150)

    def test_balance_override(self, sample_config, sample_votes, sample_choices):
        balances = {"0xAlice": 250, "0xBob": 500, "0xCarol": 50, "0xDave": 200, "0xErin": 0}
        result = AllocationEngine(sample_config).run(sample_votes, sample_choices, balance_lookup=balances.__getitem__)
        assert result.total_votes == Decimal(1000)
        assert result.total_budget == Decimal(500)
        assert _amounts(result) == {"0xAlice": Decimal(250), "0xBob": Decimal(250)}


@pytest.fixture()
def reflection_config(sample_config):
    return replace(
        sample_config,
        reflection_proposal_id="0xreflection",
        reflection_proxy_address="0xAlice",
        reflection_choices=("WBTC (Arbitrum)",),
    )


@pytest.fixture()
def reflection_round(make_vote):
    choices = choices_from_labels(["WBTC (Arbitrum)", "Other (Arbitrum)"])
    votes = [make_vote("0xr1", 30, {"1": 1}), make_vote("0xr2", 10, {"2": 1})]
    return choices, votes


class TestReflection:
    def test_derived_payouts(self, reflection_config, reflection_round, sample_votes, sample_choices):
        engine = AllocationEngine(reflection_config)
        primary = engine.run(sample_votes, sample_choices)
        choices, votes = reflection_round
        result = engine.derive_reflection(primary, votes, choices)
        assert not result.pending
        assert result.proposal_id == "0xreflection"
        assert result.proxy_qualifying_percent == Decimal("7.5")
        assert result.total_budget == Decimal(75)
        assert [(p.voter, p.final_bribe) for p in result.payouts] == [("0xr1", Decimal(75))]

    def test_realized_rate_matches_configured(self, reflection_config, reflection_round, sample_votes, sample_choices):
        engine = AllocationEngine(replace(reflection_config, reflection_rate_source="realized"))
        primary = engine.run(sample_votes, sample_choices)
        choices, votes = reflection_round
        assert engine.derive_reflection(primary, votes, choices).total_budget == Decimal(75)

    def test_pending_when_proxy_absent(self, reflection_config, reflection_round, sample_votes, sample_choices, caplog):
        engine = AllocationEngine(replace(reflection_config, reflection_proxy_address="0xNobody"))
        primary = engine.run(sample_votes, sample_choices)
        choices, votes = reflection_round
        with caplog.at_level(logging.WARNING, logger="bribe_allocation.engine"):
            result = engine.derive_reflection(primary, votes, choices)
        assert result.pending
        assert [p.voter for p in result.payouts] == ["0xr1", "0xr2"]
        assert all(p.final_bribe is None for p in result.payouts)
        assert "pending" in caplog.text.lower()

    def test_proxy_backing_other_choice_settles_at_zero(
        self, reflection_config, reflection_round, sample_votes, sample_choices
    ):
        engine = AllocationEngine(replace(reflection_config, reflection_proxy_address="0xCarol"))
        primary = engine.run(sample_votes, sample_choices)
        assert primary.payout_for("0xCarol") is None
        choices, votes = reflection_round
        result = engine.derive_reflection(primary, votes, choices)
        assert not result.pending
        assert result.total_budget == 0
        assert result.proxy_qualifying_percent == Decimal(30)
        assert [(p.voter, p.final_bribe) for p in result.payouts] == [("0xr1", Decimal(0))]

    def test_requires_reflection_config(self, sample_config, sample_votes, sample_choices, reflection_round):
        engine = AllocationEngine(sample_config)
        primary = engine.run(sample_votes, sample_choices)
        choices, votes = reflection_round
        with pytest.raises(ValueError, match="reflection proxy"):
            engine.derive_reflection(primary, votes, choices)

"""Unit tests for vote and chain aggregation."""

import logging
from decimal import Decimal

import pytest

from bribe_allocation._common import parse_chain, to_decimal
from bribe_allocation.exceptions import DataUnavailable, MalformedChoiceLabel
from bribe_allocation.models import Choice, choices_from_labels
from bribe_allocation.stages import (
    aggregate_chains,
    aggregate_votes,
    build_choice_totals,
    latest_votes,
    override_voting_power,
)

EPS = Decimal("1e-20")


class TestParseChain:
    def test_simple_label(self):
        assert parse_chain("WBTC (Arbitrum)") == "Arbitrum"

    def test_last_group_wins(self):
        assert parse_chain("wstETH (v2) (Optimism)") == "Optimism"

    def test_trailing_whitespace(self):
        assert parse_chain("DAI ( Base )  ") == "Base"

    def test_missing_chain_raises(self):
        with pytest.raises(MalformedChoiceLabel, match="parenthesised chain"):
            parse_chain("WBTC on Arbitrum")

    def test_malformed_label_is_data_unavailable(self):
        with pytest.raises(DataUnavailable):
            Choice("1", "WBTC").chain


class TestToDecimal:
    def test_float_goes_through_str(self):
        assert to_decimal(0.1) == Decimal("0.1")

    def test_bool_rejected(self):
        with pytest.raises(ValueError, match="Expected a number"):
            to_decimal(True)

    def test_nan_rejected(self):
        with pytest.raises(ValueError, match="finite"):
            to_decimal("NaN")


class TestAggregateVotes:
    def test_split_ballot(self, make_vote, sample_choices):
        raw, total = aggregate_votes([make_vote("0xa", 100, {"1": 3, "2": 2})], sample_choices)
        assert raw["1"] == Decimal(60)
        assert raw["2"] == Decimal(40)
        assert total == Decimal(100)

    def test_conservation(self, make_vote, sample_choices):
        vote = make_vote("0xa", 7, {"1": 1, "2": 1, "3": 1})
        raw, total = aggregate_votes([vote], sample_choices)
        assert abs(sum(raw.values()) - Decimal(7)) < EPS
        assert abs(total - Decimal(7)) < EPS

    def test_every_choice_present(self, make_vote, sample_choices):
        raw, _ = aggregate_votes([make_vote("0xa", 1, {"1": 1})], sample_choices)
        assert list(raw) == ["1", "2", "3", "4"]
        assert raw["4"] == 0

    def test_zero_weight_ballot_skipped(self, make_vote, sample_choices, caplog):
        votes = [make_vote("0xa", 100, {"1": 0}), make_vote("0xb", 50, {"2": 1})]
        with caplog.at_level(logging.WARNING, logger="bribe_allocation.stages.aggregation"):
            raw, total = aggregate_votes(votes, sample_choices)
        assert total == Decimal(50)
        assert raw["1"] == 0
        assert "zero total weight" in caplog.text

    def test_unknown_choice_raises(self, make_vote, sample_choices):
        with pytest.raises(DataUnavailable, match="unknown choice"):
            aggregate_votes([make_vote("0xa", 1, {"9": 1})], sample_choices)


class TestChoiceTotals:
    def test_percentages(self, sample_votes, sample_choices):
        totals, total = build_choice_totals(sample_votes, sample_choices)
        assert total == Decimal(1000)
        assert [t.raw_votes for t in totals] == [Decimal(250), Decimal(0), Decimal(550), Decimal(200)]
        assert [t.raw_percentage for t in totals] == [Decimal(25), Decimal(0), Decimal(55), Decimal(20)]

    def test_no_votes_gives_zero_percentages(self, sample_choices):
        totals, total = build_choice_totals([], sample_choices)
        assert total == 0
        assert all(t.raw_percentage == 0 for t in totals)


class TestAggregateChains:
    def test_sum_and_order(self, sample_votes, sample_choices):
        totals, _ = build_choice_totals(sample_votes, sample_choices)
        chains = aggregate_chains(totals)
        assert [(c.chain, c.percentage) for c in chains] == [
            ("Optimism", Decimal(55)),
            ("Arbitrum", Decimal(25)),
            ("Base", Decimal(20)),
        ]

    def test_malformed_label_surfaces(self, make_vote):
        choices = choices_from_labels(["WBTC (Arbitrum)", "Abstain"])
        totals, _ = build_choice_totals([make_vote("0xa", 1, {"1": 1})], choices)
        with pytest.raises(MalformedChoiceLabel):
            aggregate_chains(totals)


class TestLatestVotes:
    def test_latest_ballot_wins(self, make_vote, caplog):
        votes = [
            make_vote("0xAAA", 10, {"1": 1}, timestamp=5),
            make_vote("0xbbb", 20, {"2": 1}, timestamp=6),
            make_vote("0xaaa", 30, {"3": 1}, timestamp=9),
        ]
        with caplog.at_level(logging.WARNING, logger="bribe_allocation.stages.aggregation"):
            result = latest_votes(votes)
        assert [v.voting_power for v in result] == [Decimal(30), Decimal(20)]
        assert "superseded" in caplog.text

    def test_no_mutation(self, sample_votes):
        original = list(sample_votes)
        latest_votes(sample_votes)
        assert sample_votes == original


class TestOverrideVotingPower:
    def test_balances_replace_voting_power(self, make_vote):
        votes = [make_vote("0xa", 1, {"1": 1}), make_vote("0xb", 2, {"1": 1})]
        balances = {"0xa": "5.5", "0xb": 0}
        result = override_voting_power(votes, balances.__getitem__)
        assert [v.voting_power for v in result] == [Decimal("5.5"), Decimal(0)]
        assert votes[0].voting_power == Decimal(1)

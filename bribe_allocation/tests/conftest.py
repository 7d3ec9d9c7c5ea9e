"""Shared fixtures for bribe allocation tests."""

from decimal import Decimal

import pytest

from bribe_allocation.config import AllocationConfig
from bribe_allocation.models import VoteRecord, choices_from_labels


@pytest.fixture()
def make_vote():
    """Factory for vote records: ``make_vote("0xa", 100, {"1": 1})``."""

    def _make(voter, voting_power, weights, timestamp=None):
        return VoteRecord(
            voter=voter,
            voting_power=Decimal(str(voting_power)),
            weights={cid: Decimal(str(w)) for cid, w in weights.items()},
            timestamp=timestamp,
        )

    return _make


@pytest.fixture()
def sample_choices():
    """Four choices on three chains."""
    return choices_from_labels(["WBTC (Arbitrum)", "WETH (Arbitrum)", "USDC (Optimism)", "DAI (Base)"])


@pytest.fixture()
def sample_votes(make_vote):
    """Ballots totalling 1000 votes: 250 / 0 / 550 / 200 per choice."""
    return [
        make_vote("0xAlice", 100, {"1": 1}, timestamp=1),
        make_vote("0xBob", 300, {"1": 1, "3": 1}, timestamp=2),
        make_vote("0xCarol", 400, {"3": 1}, timestamp=3),
        make_vote("0xDave", 200, {"4": 1}, timestamp=4),
        make_vote("0xErin", 0, {"1": 1}, timestamp=5),
    ]


@pytest.fixture()
def sample_config():
    """Single-choice config on WBTC with a Base-excluding threshold and a 60% cap."""
    return AllocationConfig(
        proposal_id="0xproposal",
        sponsor_choices=("WBTC (Arbitrum)",),
        rate_per_one_percent=Decimal(10),
        min_chain_percentage_threshold=Decimal(21),
        max_choice_percentage_cap=Decimal(60),
    )


@pytest.fixture()
def sample_event():
    """Vote-hub shaped event matching ``sample_votes``."""
    return {
        "choices": ["WBTC (Arbitrum)", "WETH (Arbitrum)", "USDC (Optimism)", "DAI (Base)"],
        "votes": [
            {"voter": "0xAlice", "vp": 100, "choice": 1, "created": 1},
            {"voter": "0xBob", "vp": 300, "choice": {"1": 1, "3": 1}, "created": 2},
            {"voter": "0xCarol", "vp": 400, "choice": 3, "created": 3},
            {"voter": "0xDave", "vp": 200.0, "choice": {"4": 2}, "created": 4},
            {"voter": "0xErin", "vp": 0, "choice": 1, "created": 5},
        ],
    }

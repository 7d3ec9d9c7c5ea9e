"""Data models for the bribe allocation pipeline."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal

from bribe_allocation._common import ZERO, normalize_address, parse_chain

SETTLED = "settled"
PENDING = "pending"


@dataclass(frozen=True)
class Choice:
    """One selectable option of a proposal.

    Parameters
    ----------
    choice_id : str
        Opaque key used by vote weight mappings (``"1"`` for the first choice).
    label : str
        Human-readable label with an embedded chain, e.g. ``"WBTC (Arbitrum)"``.
    """

    choice_id: str
    label: str

    @property
    def chain(self) -> str:
        """Chain name parsed from the label."""
        return parse_chain(self.label)


@dataclass(frozen=True)
class VoteRecord:
    """A single ballot.

    Parameters
    ----------
    voter : str
        Voter address.
    voting_power : Decimal
        Non-negative voting power of the ballot.
    weights : Mapping[str, Decimal]
        Non-negative weight per choice id.
    timestamp : int, optional
        Creation time of the ballot, used to resolve duplicates.
    """

    voter: str
    voting_power: Decimal
    weights: Mapping[str, Decimal]
    timestamp: int | None = None

    def __post_init__(self) -> None:
        """Reject negative voting power or weights."""
        if self.voting_power < 0:
            raise ValueError(f"voting_power must be non-negative for {self.voter}")
        if any(w < 0 for w in self.weights.values()):
            raise ValueError(f"weights must be non-negative for {self.voter}")

    @property
    def weight_sum(self) -> Decimal:
        return sum(self.weights.values(), ZERO)

    def share_of(self, choice_ids: Iterable[str]) -> Decimal:
        """Fraction of this ballot assigned to ``choice_ids`` (zero for an empty ballot)."""
        total = self.weight_sum
        if total == 0:
            return ZERO
        return sum((self.weights.get(cid, ZERO) for cid in choice_ids), ZERO) / total


@dataclass(frozen=True)
class ChoiceTotal:
    """Per-choice totals, annotated by the eligibility and capping stages.

    Parameters
    ----------
    choice : Choice
        The choice these totals belong to.
    raw_votes : Decimal
        Voting power apportioned to the choice.
    raw_percentage : Decimal
        ``raw_votes`` as a percentage of all votes.
    eligible_votes : Decimal
        ``raw_votes``, or zero when the choice's chain missed the threshold.
    eligible_percentage : Decimal
        ``eligible_votes`` as a percentage of all eligible votes.
    capped_percentage : Decimal
        Final percentage after cap normalization.
    is_eligible : bool
        Whether the choice's chain cleared the threshold.
    """

    choice: Choice
    raw_votes: Decimal
    raw_percentage: Decimal
    eligible_votes: Decimal = ZERO
    eligible_percentage: Decimal = ZERO
    capped_percentage: Decimal = ZERO
    is_eligible: bool = True


@dataclass(frozen=True)
class ChainTotal:
    """Sum of raw percentages of all choices on one chain."""

    chain: str
    percentage: Decimal


@dataclass(frozen=True)
class Backing:
    """A voter's qualifying support for the sponsor choice(s).

    ``backing_power`` is ``voting_power * choice_share``.
    """

    voter: str
    voting_power: Decimal
    choice_share: Decimal
    backing_power: Decimal


@dataclass(frozen=True)
class Payout:
    """A voter's bribe in the primary allocation.

    Parameters
    ----------
    voter : str
        Voter address.
    voting_power : Decimal
        Voting power of the ballot.
    choice_share : Decimal
        Fraction of the ballot on the sponsor choice(s), in ``(0, 1]``.
    backing_power : Decimal
        ``voting_power * choice_share``.
    raw_bribe : Decimal
        Proportional share of the total budget.
    whale_adjustment : Decimal
        Clawback (negative) or redistribution (positive) amount.
    """

    voter: str
    voting_power: Decimal
    choice_share: Decimal
    backing_power: Decimal
    raw_bribe: Decimal
    whale_adjustment: Decimal = ZERO

    @property
    def final_bribe(self) -> Decimal:
        return self.raw_bribe + self.whale_adjustment


@dataclass(frozen=True)
class ReflectionPayout:
    """A reflection voter's share of the proxy's primary payout.

    ``raw_bribe`` is ``None`` while the reflection round is pending.
    """

    voter: str
    voting_power: Decimal
    choice_share: Decimal
    backing_power: Decimal
    raw_bribe: Decimal | None
    whale_adjustment: Decimal = ZERO
    status: str = SETTLED

    @property
    def pending(self) -> bool:
        return self.status == PENDING

    @property
    def final_bribe(self) -> Decimal | None:
        if self.raw_bribe is None:
            return None
        return self.raw_bribe + self.whale_adjustment


@dataclass(frozen=True)
class AllocationResult:
    """Output of one primary allocation run.

    Parameters
    ----------
    proposal_id : str
        Proposal the votes belong to.
    rule : str
        Budget rule identifier (``"single_choice"`` or ``"paired_choice"``).
    total_votes : Decimal
        Sum of voting power apportioned over all choices.
    choice_totals : list[ChoiceTotal]
        Per-choice totals, in choice order.
    chain_totals : list[ChainTotal]
        Per-chain percentages, sorted descending.
    total_budget : Decimal
        Budget derived for the sponsor choice(s).
    payouts : list[Payout]
        One payout per qualifying voter.
    clawed_back : Decimal
        Amount reclaimed from whales.
    redistributed : Decimal
        Part of ``clawed_back`` handed back to other voters.
    voter_power : dict[str, Decimal]
        Voting power of every counted ballot, keyed by lower-cased address.
    """

    proposal_id: str
    rule: str
    total_votes: Decimal
    choice_totals: list[ChoiceTotal]
    chain_totals: list[ChainTotal]
    total_budget: Decimal
    payouts: list[Payout] = field(default_factory=list)
    clawed_back: Decimal = ZERO
    redistributed: Decimal = ZERO
    voter_power: dict[str, Decimal] = field(default_factory=dict)

    @property
    def total_paid(self) -> Decimal:
        return sum((p.final_bribe for p in self.payouts), ZERO)

    def voted(self, address: str) -> bool:
        return normalize_address(address) in self.voter_power

    def payout_for(self, address: str) -> Payout | None:
        """Return the payout of ``address`` (case-insensitive), if any."""
        address = normalize_address(address)
        for payout in self.payouts:
            if normalize_address(payout.voter) == address:
                return payout
        return None


@dataclass(frozen=True)
class ReflectionResult:
    """Output of a cross-proposal derivation.

    ``total_budget`` and the percentages are ``None`` when pending.
    """

    proposal_id: str | None
    proxy_address: str
    status: str
    total_budget: Decimal | None
    percent_bribed_of_pool: Decimal | None
    proxy_qualifying_percent: Decimal | None
    payouts: list[ReflectionPayout] = field(default_factory=list)

    @property
    def pending(self) -> bool:
        return self.status == PENDING


def choices_from_labels(labels: list[str]) -> list[Choice]:
    """Number choice labels from ``"1"`` in order, as vote hubs do."""
    return [Choice(choice_id=str(idx), label=label) for idx, label in enumerate(labels, start=1)]

"""Run configuration for the allocation engine."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, fields
from decimal import Decimal
from typing import Any

from bribe_allocation._common import HUNDRED, ZERO, normalize_address, to_decimal

RATE_SOURCES = ("config", "realized")

# camelCase option names accepted by ``from_mapping``.
_FIELD_MAP_IN: dict[str, str] = {
    "proposalId": "proposal_id",
    "sponsorChoices": "sponsor_choices",
    "ratePerOnePercent": "rate_per_one_percent",
    "minChainPercentageThreshold": "min_chain_percentage_threshold",
    "maxChoicePercentageCap": "max_choice_percentage_cap",
    "maxTotalBudget": "max_total_budget",
    "whaleVotingPowerThreshold": "whale_voting_power_threshold",
    "whaleRedistributionFraction": "whale_redistribution_fraction",
    "whaleExemptAddresses": "whale_exempt_addresses",
    "forcedZeroAddresses": "forced_zero_addresses",
    "allowIneligibleSponsor": "allow_ineligible_sponsor",
    "maxCapIterations": "max_cap_iterations",
    "reflectionProposalId": "reflection_proposal_id",
    "reflectionProxyAddress": "reflection_proxy_address",
    "reflectionChoices": "reflection_choices",
    "reflectionRateSource": "reflection_rate_source",
    "exportPrecision": "export_precision",
}

_DECIMAL_FIELDS = (
    "rate_per_one_percent",
    "min_chain_percentage_threshold",
    "max_choice_percentage_cap",
    "max_total_budget",
    "whale_voting_power_threshold",
    "whale_redistribution_fraction",
)


def _addresses(values: Iterable[str]) -> frozenset[str]:
    return frozenset(normalize_address(v) for v in values)


@dataclass(frozen=True)
class AllocationConfig:
    """Immutable configuration of one allocation run.

    Parameters
    ----------
    proposal_id : str
        Primary proposal identifier.
    sponsor_choices : tuple[str, ...]
        Labels of the sponsor's choice(s). One label selects single-choice
        mode, two labels select the paired ("50/50") mode.
    rate_per_one_percent : Decimal
        Budget units paid per one percent of vote.
    min_chain_percentage_threshold : Decimal
        Chains below this aggregate percentage forfeit their votes.
    max_choice_percentage_cap : Decimal, optional
        Maximum final percentage of any single choice.
    max_total_budget : Decimal, optional
        Hard ceiling on the derived budget.
    whale_voting_power_threshold : Decimal, optional
        Voters above this voting power are clawed back.
    whale_redistribution_fraction : Decimal
        Percentage (0-100) of the clawed-back amount handed to smaller voters.
    whale_exempt_addresses : frozenset[str]
        Addresses never clawed back.
    forced_zero_addresses : frozenset[str]
        Addresses whose payout is always zero.
    allow_ineligible_sponsor : bool
        Proceed with a zero budget instead of raising ``ThresholdNotMet``.
    max_cap_iterations : int
        Iteration ceiling for cap normalization.
    reflection_proposal_id : str, optional
        Secondary proposal whose voters share the proxy's payout.
    reflection_proxy_address : str, optional
        Voter of the primary proposal representing the reflection pool.
    reflection_choices : tuple[str, ...]
        Labels of the reflection choice(s) mirroring the sponsor choice(s).
    reflection_rate_source : str
        ``"config"`` uses ``rate_per_one_percent``; ``"realized"`` derives
        the rate from the proxy's primary payout.
    export_precision : int
        Fractional digits of exported amounts.

    Raises
    ------
    ValueError
        If any value is out of range or inconsistent.
    """

    proposal_id: str
    sponsor_choices: tuple[str, ...]
    rate_per_one_percent: Decimal
    min_chain_percentage_threshold: Decimal = ZERO
    max_choice_percentage_cap: Decimal | None = None
    max_total_budget: Decimal | None = None
    whale_voting_power_threshold: Decimal | None = None
    whale_redistribution_fraction: Decimal = ZERO
    whale_exempt_addresses: frozenset[str] = field(default_factory=frozenset)
    forced_zero_addresses: frozenset[str] = field(default_factory=frozenset)
    allow_ineligible_sponsor: bool = False
    max_cap_iterations: int = 100
    reflection_proposal_id: str | None = None
    reflection_proxy_address: str | None = None
    reflection_choices: tuple[str, ...] = ()
    reflection_rate_source: str = "config"
    export_precision: int = 10

    def __post_init__(self) -> None:
        """Coerce numeric and address fields, then validate."""
        for name in _DECIMAL_FIELDS:
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, to_decimal(value))
        if isinstance(self.sponsor_choices, str):
            object.__setattr__(self, "sponsor_choices", (self.sponsor_choices,))
        else:
            object.__setattr__(self, "sponsor_choices", tuple(self.sponsor_choices))
        if isinstance(self.reflection_choices, str):
            object.__setattr__(self, "reflection_choices", (self.reflection_choices,))
        else:
            object.__setattr__(self, "reflection_choices", tuple(self.reflection_choices))
        object.__setattr__(self, "whale_exempt_addresses", _addresses(self.whale_exempt_addresses))
        object.__setattr__(self, "forced_zero_addresses", _addresses(self.forced_zero_addresses))
        if self.reflection_proxy_address is not None:
            object.__setattr__(self, "reflection_proxy_address", normalize_address(self.reflection_proxy_address))
        self._validate()

    def _validate(self) -> None:
        if not self.proposal_id:
            raise ValueError("proposal_id must not be empty.")
        if len(self.sponsor_choices) not in (1, 2):
            raise ValueError("sponsor_choices must name one or two choices.")
        if len(set(self.sponsor_choices)) != len(self.sponsor_choices):
            raise ValueError("sponsor_choices must be distinct.")
        if self.rate_per_one_percent < 0:
            raise ValueError("rate_per_one_percent must be non-negative.")
        if not (ZERO <= self.min_chain_percentage_threshold <= HUNDRED):
            raise ValueError("min_chain_percentage_threshold must be between 0 and 100.")
        cap = self.max_choice_percentage_cap
        if cap is not None and not (ZERO < cap <= HUNDRED):
            raise ValueError("max_choice_percentage_cap must be in (0, 100].")
        if self.max_total_budget is not None and self.max_total_budget < 0:
            raise ValueError("max_total_budget must be non-negative.")
        if self.whale_voting_power_threshold is not None and self.whale_voting_power_threshold < 0:
            raise ValueError("whale_voting_power_threshold must be non-negative.")
        if not (ZERO <= self.whale_redistribution_fraction <= HUNDRED):
            raise ValueError("whale_redistribution_fraction must be between 0 and 100.")
        if self.max_cap_iterations < 1:
            raise ValueError("max_cap_iterations must be at least 1.")
        if self.reflection_rate_source not in RATE_SOURCES:
            raise ValueError(f"reflection_rate_source must be one of {RATE_SOURCES}.")
        if self.export_precision < 0:
            raise ValueError("export_precision must be non-negative.")
        if self.reflection_proxy_address is not None:
            if len(self.reflection_choices) != len(self.sponsor_choices):
                raise ValueError("reflection_choices must mirror sponsor_choices one-to-one.")

    @property
    def mode(self) -> str:
        """``"single"`` for one sponsor choice, ``"paired"`` for two."""
        return "single" if len(self.sponsor_choices) == 1 else "paired"

    @property
    def has_reflection(self) -> bool:
        return self.reflection_proxy_address is not None

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "AllocationConfig":
        """Build a config from snake_case or camelCase option names.

        Parameters
        ----------
        options : Mapping[str, Any]
            Option values keyed by field name.

        Returns
        -------
        AllocationConfig

        Raises
        ------
        ValueError
            If an option name is unknown or a value is invalid.
        """
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in options.items():
            name = _FIELD_MAP_IN.get(key, key)
            if name not in known:
                raise ValueError(f"Unknown configuration option: {key!r}")
            kwargs[name] = value
        return cls(**kwargs)

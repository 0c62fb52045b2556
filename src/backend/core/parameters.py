"""
Per-scope engine parameters.

Parameters are resolved for every request from the application settings
overlaid with the scope's own ``config`` document, then passed explicitly
to the services. Nothing here is module-level mutable state.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from core.config import Settings, get_settings


class ScopeParameters(BaseModel):
    """Immutable snapshot of the tunables governing one scope."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    vote_salt: str = Field(repr=False)

    damping_factor: float = Field(gt=0, le=1)
    ranking_epsilon: float = Field(gt=0)
    ranking_max_iterations: int = Field(ge=1)

    points_per_participant: float
    inflation_factor: float
    bootstrap_hours: int

    claim_poll_hours: int
    claim_min_votes: int

    challenge_poll_hours: int
    challenge_quorum: float
    challenge_critical_quorum: float
    hearts_critical: float

    buy_poll_hours: int
    buy_vote_unit: float = Field(gt=0)

    hearts_baseline: float
    hearts_max: float
    hearts_regen_amount: float

    penalty_increment: float = Field(gt=0)
    penalty_delay_hours: int

    karma_proportion: int = Field(ge=1)
    karma_max_hearts: float
    karma_delay_hours: int

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScopeParameters":
        return cls(
            vote_salt=settings.SECRET_KEY,
            damping_factor=settings.DAMPING_FACTOR,
            ranking_epsilon=settings.RANKING_EPSILON,
            ranking_max_iterations=settings.RANKING_MAX_ITERATIONS,
            points_per_participant=settings.POINTS_PER_PARTICIPANT,
            inflation_factor=settings.INFLATION_FACTOR,
            bootstrap_hours=settings.BOOTSTRAP_HOURS,
            claim_poll_hours=settings.CLAIM_POLL_HOURS,
            claim_min_votes=settings.CLAIM_MIN_VOTES,
            challenge_poll_hours=settings.CHALLENGE_POLL_HOURS,
            challenge_quorum=settings.CHALLENGE_QUORUM,
            challenge_critical_quorum=settings.CHALLENGE_CRITICAL_QUORUM,
            hearts_critical=settings.HEARTS_CRITICAL,
            buy_poll_hours=settings.BUY_POLL_HOURS,
            buy_vote_unit=settings.BUY_VOTE_UNIT,
            hearts_baseline=settings.HEARTS_BASELINE,
            hearts_max=settings.HEARTS_MAX,
            hearts_regen_amount=settings.HEARTS_REGEN_AMOUNT,
            penalty_increment=settings.PENALTY_INCREMENT,
            penalty_delay_hours=settings.PENALTY_DELAY_HOURS,
            karma_proportion=settings.KARMA_PROPORTION,
            karma_max_hearts=settings.KARMA_MAX_HEARTS,
            karma_delay_hours=settings.KARMA_DELAY_HOURS,
        )

    def overlay(self, overrides: Optional[dict[str, Any]]) -> "ScopeParameters":
        """Return a copy with recognised keys from ``overrides`` applied and validated."""
        if not overrides:
            return self
        known = {k: v for k, v in overrides.items() if k in type(self).model_fields and k != "vote_salt"}
        return type(self).model_validate({**self.model_dump(), **known})


def resolve_parameters(
    scope_config: Optional[dict[str, Any]] = None,
    settings: Optional[Settings] = None,
) -> ScopeParameters:
    """Resolve parameters for a scope from settings plus its config overlay."""
    base = ScopeParameters.from_settings(settings or get_settings())
    return base.overlay(scope_config)

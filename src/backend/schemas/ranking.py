"""Ranking schemas."""

from pydantic import BaseModel, Field


class EntityWeight(BaseModel):
    """One entity's share of the ranking."""

    entity_id: int
    name: str | None = None
    weight: float = Field(ge=0)


class RankingResult(BaseModel):
    """Normalized weights keyed by entity id, plus convergence diagnostics."""

    weights: dict[int, float]
    iterations: int
    converged: bool
    participant_count: int = 0

    def ordered(self) -> list[tuple[int, float]]:
        """Entity ids by descending weight, ties broken by ascending id."""
        return sorted(self.weights.items(), key=lambda item: (-item[1], item[0]))


class EntityValue(BaseModel):
    """Claimable value currently accrued on an entity."""

    entity_id: int
    name: str
    value: float

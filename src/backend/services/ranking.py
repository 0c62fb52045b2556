"""
Preference ranking.

Turns pairwise preferences into a normalized weight per entity: the
preferences become a flow matrix, the matrix is made row-stochastic and
damped, and its stationary distribution is found by power iteration.

Matrix construction and iteration are plain functions over numpy arrays so
they can be tested (and reused for karma) without a database.
"""

from typing import Iterable, Mapping, Protocol, Sequence

import numpy as np
import structlog

from core.exceptions import InsufficientEntities
from core.parameters import ScopeParameters
from schemas.ranking import RankingResult

logger = structlog.get_logger(__name__)


class PairwisePreference(Protocol):
    alpha_id: int
    beta_id: int
    value: float


def index_entities(entity_ids: Iterable[int]) -> dict[int, int]:
    """Map entity ids to matrix indices by ascending id."""
    return {entity_id: ix for ix, entity_id in enumerate(sorted(set(entity_ids)))}


def implicit_preference(participant_count: int) -> float:
    # Halved since every pair is counted in both directions
    return (1.0 / participant_count) / 2.0


def implicit_matrix(n: int, participant_count: int) -> np.ndarray:
    """Neutral flow between every distinct pair, one half per pair overall."""
    matrix = np.full((n, n), implicit_preference(participant_count) * participant_count)
    np.fill_diagonal(matrix, 0.0)
    return matrix


def apply_preferences(
    matrix: np.ndarray,
    index: Mapping[int, int],
    preferences: Iterable[PairwisePreference],
    participant_count: int,
) -> np.ndarray:
    """
    Replace implicit neutral flow with stated preferences.

    Returns a new matrix. Each preference moves ``value`` from beta to alpha
    and ``1 - value`` from alpha to beta, less the implicit share it replaces.
    """
    implicit = implicit_preference(participant_count)
    result = matrix.copy()
    for preference in preferences:
        alpha = index[preference.alpha_id]
        beta = index[preference.beta_id]
        result[beta, alpha] += preference.value - implicit
        result[alpha, beta] += (1.0 - preference.value) - implicit
    # More statements than participants can overdraw a pair
    return np.maximum(result, 0.0)


def with_diagonal(matrix: np.ndarray) -> np.ndarray:
    """Set each diagonal entry to the sum of its column's off-diagonal flow."""
    result = matrix.copy()
    np.fill_diagonal(result, 0.0)
    np.fill_diagonal(result, result.sum(axis=0))
    return result


def build_matrix(
    entity_ids: Sequence[int],
    preferences: Iterable[PairwisePreference],
    participant_count: int,
) -> tuple[dict[int, int], np.ndarray]:
    index = index_entities(entity_ids)
    matrix = implicit_matrix(len(index), participant_count)
    matrix = apply_preferences(matrix, index, preferences, participant_count)
    return index, with_diagonal(matrix)


def damped_stochastic(matrix: np.ndarray, damping_factor: float) -> np.ndarray:
    """Row-normalize and blend with the uniform matrix: ``d*M + (1-d)/n``."""
    n = matrix.shape[0]
    row_sums = matrix.sum(axis=1, keepdims=True)
    # A row with no flow at all teleports uniformly
    normalized = np.divide(
        matrix,
        row_sums,
        out=np.full_like(matrix, 1.0 / n),
        where=row_sums > 0,
    )
    return damping_factor * normalized + (1.0 - damping_factor) / n


def power_iterate(
    matrix: np.ndarray, epsilon: float, max_iterations: int
) -> tuple[np.ndarray, int, bool]:
    """
    Left power iteration from the uniform vector.

    Returns ``(vector, iterations, converged)``; on hitting the iteration cap
    the last iterate is returned with ``converged`` False.
    """
    assert matrix.ndim == 2 and matrix.shape[0] == matrix.shape[1], "Matrix must be square"
    n = matrix.shape[0]
    vector = np.full(n, 1.0 / n)
    for iteration in range(1, max_iterations + 1):
        nxt = vector @ matrix
        if np.linalg.norm(nxt - vector) < epsilon:
            return nxt, iteration, True
        vector = nxt
    return vector, max_iterations, False


def label(index: Mapping[int, int], vector: np.ndarray) -> dict[int, float]:
    assert len(index) == vector.shape[0], "Mismatched ranking dimensions"
    return {entity_id: float(vector[ix]) for entity_id, ix in index.items()}


class RankingEngine:
    """Stateless ranking over one snapshot of entities and preferences."""

    def __init__(
        self,
        damping_factor: float = 0.99,
        epsilon: float = 0.001,
        max_iterations: int = 1000,
    ):
        assert 0 < damping_factor <= 1, "Damping factor must be in (0, 1]"
        self.damping_factor = damping_factor
        self.epsilon = epsilon
        self.max_iterations = max_iterations

    @classmethod
    def from_parameters(cls, params: ScopeParameters) -> "RankingEngine":
        return cls(
            damping_factor=params.damping_factor,
            epsilon=params.ranking_epsilon,
            max_iterations=params.ranking_max_iterations,
        )

    def rank(
        self,
        entity_ids: Sequence[int],
        preferences: Iterable[PairwisePreference],
        participant_count: int,
    ) -> RankingResult:
        """
        Rank ``entity_ids`` by the stated preferences.

        Preferences naming an entity outside ``entity_ids`` are ignored.
        Raises InsufficientEntities for fewer than two entities.
        """
        entity_ids = sorted(set(entity_ids))
        if len(entity_ids) < 2:
            raise InsufficientEntities(f"Cannot rank {len(entity_ids)} entities, need at least 2")

        participant_count = max(participant_count, 1)
        known = set(entity_ids)
        relevant = [p for p in preferences if p.alpha_id in known and p.beta_id in known]

        index, matrix = build_matrix(entity_ids, relevant, participant_count)
        stochastic = damped_stochastic(matrix, self.damping_factor)
        vector, iterations, converged = power_iterate(stochastic, self.epsilon, self.max_iterations)

        if not converged:
            logger.warning(
                "ranking_not_converged",
                entities=len(entity_ids),
                iterations=iterations,
                epsilon=self.epsilon,
            )
        else:
            logger.debug("ranking_converged", entities=len(entity_ids), iterations=iterations)

        # Renormalize away floating-point drift
        total = vector.sum()
        if total > 0:
            vector = vector / total

        return RankingResult(
            weights=label(index, vector),
            iterations=iterations,
            converged=converged,
            participant_count=participant_count,
        )

"""
Preference schemas.

Preferences arrive in one of two shapes:

- directional: "``target`` over ``source`` with strength ``value``", the
  way a participant states an opinion
- canonical: the stored form, ordered ``alpha_id < beta_id`` where
  ``value`` is the flow from beta to alpha

Both normalize to the canonical form.
"""

from typing import Annotated, Iterable, Literal, Optional, Union

from pydantic import BaseModel, Field

from core.exceptions import InvalidPreference


class CanonicalPreference(BaseModel):
    """Preference in stored order; ``value`` above 0.5 favours ``alpha_id``."""

    kind: Literal["canonical"] = "canonical"
    participant_id: Optional[str] = None
    alpha_id: int
    beta_id: int
    value: float = Field(ge=0, le=1)

    model_config = {"frozen": True}

    def normalize(self) -> "CanonicalPreference":
        if self.alpha_id >= self.beta_id:
            raise InvalidPreference(
                f"Invalid preference: alpha {self.alpha_id} must be below beta {self.beta_id}"
            )
        return self

    @property
    def key(self) -> tuple[Optional[str], int, int]:
        return (self.participant_id, self.alpha_id, self.beta_id)


class DirectionalPreference(BaseModel):
    """Preference for ``target_id`` over ``source_id`` with strength ``value``."""

    kind: Literal["directional"] = "directional"
    participant_id: Optional[str] = None
    source_id: int
    target_id: int
    value: float = Field(ge=0, le=1)

    model_config = {"frozen": True}

    def normalize(self) -> CanonicalPreference:
        if self.source_id == self.target_id:
            raise InvalidPreference(f"Invalid preference: entity {self.source_id} against itself")

        if self.target_id < self.source_id:
            alpha, beta, value = self.target_id, self.source_id, self.value
        else:
            alpha, beta, value = self.source_id, self.target_id, 1.0 - self.value

        return CanonicalPreference(
            participant_id=self.participant_id,
            alpha_id=alpha,
            beta_id=beta,
            value=value,
        )


PreferenceInput = Annotated[
    Union[DirectionalPreference, CanonicalPreference],
    Field(discriminator="kind"),
]


def merge_preferences(
    existing: Iterable[CanonicalPreference],
    incoming: Iterable[CanonicalPreference],
) -> list[CanonicalPreference]:
    """
    Overlay ``incoming`` on ``existing`` keyed by participant and pair.

    Incoming preferences win; order of first appearance is kept.
    """
    merged: dict[tuple[Optional[str], int, int], CanonicalPreference] = {}
    for preference in existing:
        merged[preference.key] = preference
    for preference in incoming:
        merged[preference.key] = preference
    return list(merged.values())

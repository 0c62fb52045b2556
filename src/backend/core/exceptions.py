"""
Domain error taxonomy.

Validation and state errors are terminal and never retried. Duplicate
periodic ledger writes are silent no-ops, and a lost resolution race
surfaces as ``AlreadyResolved``. An upsert whose competing row vanished
before it could be overwritten raises ``ConcurrencyConflict``.
"""


class HearthError(Exception):
    """Base exception for all domain errors."""

    pass


class ValidationError(HearthError):
    """Input is malformed or violates a precondition."""

    pass


class InsufficientEntities(ValidationError):
    """Fewer than two entities were supplied for ranking."""

    pass


class InvalidPreference(ValidationError):
    """Preference pair is out of canonical order or self-referential."""

    pass


class SelfTargetError(ValidationError):
    """A request targets its own initiator."""

    pass


class ZeroValueClaim(ValidationError):
    """An entity with no accrued value cannot be claimed."""

    pass


class StateError(HearthError):
    """Operation is not allowed in the current lifecycle state."""

    pass


class PollOpen(StateError):
    """The backing poll has not closed yet."""

    pass


class PollClosed(StateError):
    """The poll no longer accepts votes."""

    pass


class AlreadyResolved(StateError):
    """The request has already been resolved."""

    pass


class ConflictingRequest(StateError):
    """An equivalent request is already open."""

    pass


class NotFound(StateError):
    """Referenced row does not exist."""

    pass


class InsufficientFunds(HearthError):
    """Balance is too low for the requested amount."""

    pass


class ConcurrencyConflict(HearthError):
    """A conditional write lost a race with a concurrent writer."""

    pass

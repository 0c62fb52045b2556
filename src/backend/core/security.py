"""
Voter pseudonymisation.

Votes are stored against a one-way hash of the participant id, so the poll
tables never hold a participant identifier.
"""

import hashlib


def generate_voter_hash(voter_id: str, salt: str) -> str:
    """
    Generate a privacy-preserving hash for vote deduplication.

    The same participant always maps to the same hash for a given salt, so
    a resubmitted vote overwrites the earlier one. The salt (SECRET_KEY)
    prevents rainbow table attacks on the small participant id space.

    Args:
        voter_id: The participant's unique identifier
        salt: Server-side secret

    Returns:
        A 64 character SHA-256 hex digest
    """
    data = f"{salt}{voter_id}"
    return hashlib.sha256(data.encode()).hexdigest()

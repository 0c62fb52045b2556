"""
Tests for poll and vote repositories.
"""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest


@pytest.fixture
def mock_poll():
    """Create a mock poll object."""
    poll = MagicMock()
    poll.id = str(uuid.uuid4())
    poll.start_time = datetime.now(timezone.utc) - timedelta(hours=1)
    poll.end_time = datetime.now(timezone.utc) + timedelta(hours=47)
    return poll


@pytest.mark.unit
class TestPollRepository:
    """Test PollRepository operations."""

    def test_repository_instantiation(self, mock_db_session) -> None:
        """Test that repository can be instantiated."""
        from repositories.poll_repository import PollRepository

        repo = PollRepository(mock_db_session)
        assert repo.db == mock_db_session

    async def test_get_by_id_returns_poll(self, mock_db_session, mock_poll) -> None:
        """Test getting poll by ID."""
        from repositories.poll_repository import PollRepository

        mock_result = MagicMock()
        mock_result.scalar_one_or_none = MagicMock(return_value=mock_poll)
        mock_db_session.execute = AsyncMock(return_value=mock_result)

        repo = PollRepository(mock_db_session)
        result = await repo.get_by_id(mock_poll.id)

        assert result == mock_poll

    async def test_get_by_id_returns_none_for_missing(self, mock_db_session) -> None:
        """Test getting a missing poll returns None."""
        from repositories.poll_repository import PollRepository

        mock_result = MagicMock()
        mock_result.scalar_one_or_none = MagicMock(return_value=None)
        mock_db_session.execute = AsyncMock(return_value=mock_result)

        repo = PollRepository(mock_db_session)
        assert await repo.get_by_id("missing") is None

    async def test_create_adds_window(self, mock_db_session) -> None:
        """Test creating a poll stores its window."""
        from repositories.poll_repository import PollRepository

        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        repo = PollRepository(mock_db_session)
        poll = await repo.create(start, start + timedelta(hours=48))

        mock_db_session.add.assert_called_once_with(poll)
        mock_db_session.flush.assert_awaited_once()
        assert poll.end_time - poll.start_time == timedelta(hours=48)
        assert uuid.UUID(poll.id)


@pytest.mark.unit
class TestVoteRepository:
    """Test VoteRepository operations."""

    async def test_count_by_value_fills_missing_side(self, mock_db_session) -> None:
        """Test counts default to zero for a side nobody voted."""
        from repositories.vote_repository import VoteRepository

        mock_result = MagicMock()
        mock_result.all = MagicMock(return_value=[(True, 3)])
        mock_db_session.execute = AsyncMock(return_value=mock_result)

        repo = VoteRepository(mock_db_session)
        counts = await repo.count_by_value("poll-1", datetime.now(timezone.utc), datetime.now(timezone.utc))

        assert counts == {True: 3, False: 0}

    async def test_upsert_overwrites_existing_vote(self, mock_db_session) -> None:
        """Test a resubmitted vote updates the stored row."""
        from repositories.vote_repository import VoteRepository

        existing = MagicMock(value=True)
        mock_result = MagicMock()
        mock_result.scalar_one_or_none = MagicMock(return_value=existing)
        mock_db_session.execute = AsyncMock(return_value=mock_result)

        submitted = datetime.now(timezone.utc)
        repo = VoteRepository(mock_db_session)
        vote = await repo.upsert("poll-1", "a" * 64, False, submitted)

        assert vote is existing
        assert existing.value is False
        assert existing.submitted_at == submitted
        mock_db_session.add.assert_not_called()

    async def test_upsert_race_overwrites_winner(self, conflicting_savepoint) -> None:
        """Test a lost insert race falls back to updating the winning row."""
        from repositories.vote_repository import VoteRepository

        winner = MagicMock(value=True)
        mock_result = MagicMock()
        mock_result.scalar_one_or_none = MagicMock(side_effect=[None, winner])
        conflicting_savepoint.execute = AsyncMock(return_value=mock_result)

        repo = VoteRepository(conflicting_savepoint)
        vote = await repo.upsert("poll-1", "a" * 64, False, datetime.now(timezone.utc))

        assert vote is winner
        assert winner.value is False

    async def test_upsert_race_with_vanished_row(self, conflicting_savepoint) -> None:
        """Test a conflicting row that disappears raises ConcurrencyConflict."""
        from core.exceptions import ConcurrencyConflict
        from repositories.vote_repository import VoteRepository

        mock_result = MagicMock()
        mock_result.scalar_one_or_none = MagicMock(return_value=None)
        conflicting_savepoint.execute = AsyncMock(return_value=mock_result)

        repo = VoteRepository(conflicting_savepoint)
        with pytest.raises(ConcurrencyConflict):
            await repo.upsert("poll-1", "a" * 64, True, datetime.now(timezone.utc))

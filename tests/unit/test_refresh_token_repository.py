"""Tests for RefreshTokenRepository.

Covers issuance, rotation, hash lookup, the three revocation paths, and
the family walk's termination rules (end of chain, missing successor,
cycle, length cap).
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from structlog.testing import capture_logs

from authstore.core.database import Database
from authstore.core.errors import TokenAlreadyRevokedError, UnexpectedStoreStateError
from authstore.core.identity import Identifier
from authstore.models import RefreshToken, User, utcnow
from authstore.repositories.database_store import DatabaseStore
from authstore.repositories.refresh_token_repository import RefreshTokenRepository
from tests.conftest import TEST_EMAIL

_UNKNOWN_HASH = "unknown-refresh-hash"


def _expires() -> datetime:
    return utcnow() + timedelta(days=30)


async def _chain(store: DatabaseStore, user: User, length: int) -> list[RefreshToken]:
    """Issue one token and rotate it ``length - 1`` times."""
    tokens = [await store.refresh_tokens.issue(user, "hash-0", _expires())]
    for n in range(1, length):
        tokens.append(
            await store.refresh_tokens.rotate(user, f"hash-{n}", _expires(), tokens[-1])
        )
    return tokens


async def _reactivate(db: Database, tokens: list[RefreshToken]) -> None:
    async with db.transaction() as session:
        await session.execute(
            update(RefreshToken)
            .where(RefreshToken.id.in_([t.id for t in tokens]))
            .values(revoked_at=None)
        )


class TestIssue:
    """Test RefreshTokenRepository.issue()."""

    async def test_issues_active_token(self, store: DatabaseStore, test_user: User):
        """New token is active and owned by the user."""
        token = await store.refresh_tokens.issue(test_user, "hash-a", _expires())

        assert token.id is not None
        assert token.user_id == test_user.id
        assert token.token_hash == "hash-a"
        assert token.revoked_at is None
        assert token.replaced_by is None
        assert token.is_valid is True

    async def test_past_expiry_is_expired(self, store: DatabaseStore, test_user: User):
        """Validity predicates follow expires_at."""
        token = await store.refresh_tokens.issue(
            test_user, "hash-old", utcnow() - timedelta(seconds=1)
        )
        assert token.is_expired is True
        assert token.is_valid is False

    async def test_rejects_unpersisted_user(self, store: DatabaseStore):
        """A user without an id is a wiring error."""
        with pytest.raises(UnexpectedStoreStateError):
            await store.refresh_tokens.issue(User(), "hash-x", _expires())


class TestFindByHash:
    """Test RefreshTokenRepository.find_by_hash()."""

    async def test_returns_token_with_owner(self, store: DatabaseStore, test_user: User):
        """Owner and owner's identifiers are loaded."""
        issued = await store.refresh_tokens.issue(test_user, "hash-a", _expires())

        token = await store.refresh_tokens.find_by_hash("hash-a")

        assert token is not None
        assert token.id == issued.id
        assert token.user.id == test_user.id
        assert token.user.email == TEST_EMAIL

    async def test_returns_none_when_not_found(self, store: DatabaseStore):
        """Unknown hash is a miss."""
        assert await store.refresh_tokens.find_by_hash(_UNKNOWN_HASH) is None


class TestRotate:
    """Test RefreshTokenRepository.rotate()."""

    async def test_links_and_revokes_old_token(
        self, store: DatabaseStore, test_user: User
    ):
        """Old token is revoked and points at its successor."""
        old = await store.refresh_tokens.issue(test_user, "hash-0", _expires())

        new = await store.refresh_tokens.rotate(test_user, "hash-1", _expires(), old)

        assert new.is_valid is True
        stored_old = await store.refresh_tokens.find_by_hash("hash-0")
        assert stored_old is not None
        assert stored_old.is_revoked is True
        assert stored_old.replaced_by == new.id

    async def test_reflects_on_passed_token(self, store: DatabaseStore, test_user: User):
        """Caller's old token object is updated in place."""
        old = await store.refresh_tokens.issue(test_user, "hash-0", _expires())

        new = await store.refresh_tokens.rotate(test_user, "hash-1", _expires(), old)

        assert old.is_revoked is True
        assert old.replaced_by == new.id

    async def test_stale_copy_loses(self, store: DatabaseStore, test_user: User):
        """Second rotation of the same token fails and writes nothing."""
        await store.refresh_tokens.issue(test_user, "hash-0", _expires())
        first_copy = await store.refresh_tokens.find_by_hash("hash-0")
        second_copy = await store.refresh_tokens.find_by_hash("hash-0")
        assert first_copy is not None
        assert second_copy is not None

        winner = await store.refresh_tokens.rotate(
            test_user, "hash-winner", _expires(), first_copy
        )
        with pytest.raises(TokenAlreadyRevokedError) as exc_info:
            await store.refresh_tokens.rotate(
                test_user, "hash-loser", _expires(), second_copy
            )

        assert exc_info.value.token_id == str(second_copy.id)
        assert await store.refresh_tokens.find_by_hash("hash-loser") is None
        stored = await store.refresh_tokens.find_by_hash("hash-0")
        assert stored is not None
        assert stored.replaced_by == winner.id

    async def test_revoked_token_cannot_be_rotated(
        self, store: DatabaseStore, test_user: User
    ):
        """Rotation of a logged-out token fails and writes nothing."""
        token = await store.refresh_tokens.issue(test_user, "hash-0", _expires())
        await store.refresh_tokens.revoke_by_hash("hash-0")

        with pytest.raises(TokenAlreadyRevokedError):
            await store.refresh_tokens.rotate(test_user, "hash-1", _expires(), token)

        assert await store.refresh_tokens.find_by_hash("hash-1") is None
        stored = await store.refresh_tokens.find_by_hash("hash-0")
        assert stored is not None
        assert stored.replaced_by is None

    async def test_token_revoked_by_logout_everywhere_cannot_be_rotated(
        self, store: DatabaseStore, test_user: User
    ):
        """revoke_all_for_user also blocks later rotation."""
        token = await store.refresh_tokens.issue(test_user, "hash-0", _expires())
        await store.refresh_tokens.revoke_all_for_user(test_user)

        with pytest.raises(TokenAlreadyRevokedError):
            await store.refresh_tokens.rotate(test_user, "hash-1", _expires(), token)

    async def test_duplicate_new_hash_rolls_back(
        self, store: DatabaseStore, test_user: User
    ):
        """A failing insert leaves the old token untouched."""
        await store.refresh_tokens.issue(test_user, "hash-taken", _expires())
        old = await store.refresh_tokens.issue(test_user, "hash-0", _expires())

        with pytest.raises(IntegrityError):
            await store.refresh_tokens.rotate(test_user, "hash-taken", _expires(), old)

        stored = await store.refresh_tokens.find_by_hash("hash-0")
        assert stored is not None
        assert stored.is_revoked is False
        assert stored.replaced_by is None

    async def test_logs_rotation(self, store: DatabaseStore, test_user: User):
        """Rotation is recorded in the audit log."""
        old = await store.refresh_tokens.issue(test_user, "hash-0", _expires())

        with capture_logs() as logs:
            new = await store.refresh_tokens.rotate(test_user, "hash-1", _expires(), old)

        rotated = [e for e in logs if e["event"] == "refresh_token_rotated"]
        assert len(rotated) == 1
        assert rotated[0]["old_token_id"] == str(old.id)
        assert rotated[0]["new_token_id"] == str(new.id)


class TestRevokeAllForUser:
    """Test RefreshTokenRepository.revoke_all_for_user()."""

    async def test_revokes_active_tokens(self, store: DatabaseStore, test_user: User):
        """Every active token of the user is revoked."""
        for n in range(3):
            await store.refresh_tokens.issue(test_user, f"hash-{n}", _expires())

        revoked = await store.refresh_tokens.revoke_all_for_user(test_user)

        assert revoked == 3
        for n in range(3):
            token = await store.refresh_tokens.find_by_hash(f"hash-{n}")
            assert token is not None
            assert token.is_revoked is True

    async def test_skips_already_revoked(self, store: DatabaseStore, test_user: User):
        """Already revoked tokens are not counted again."""
        await store.refresh_tokens.issue(test_user, "hash-0", _expires())
        await store.refresh_tokens.issue(test_user, "hash-1", _expires())
        await store.refresh_tokens.revoke_by_hash("hash-0")

        assert await store.refresh_tokens.revoke_all_for_user(test_user) == 1

    async def test_leaves_other_users_alone(self, store: DatabaseStore, test_user: User):
        """Only the given user's tokens are revoked."""
        other = await store.users.create(Identifier.email("other@example.com"))
        await store.refresh_tokens.issue(test_user, "hash-mine", _expires())
        await store.refresh_tokens.issue(other, "hash-theirs", _expires())

        await store.refresh_tokens.revoke_all_for_user(test_user)

        theirs = await store.refresh_tokens.find_by_hash("hash-theirs")
        assert theirs is not None
        assert theirs.is_revoked is False


class TestRevokeByHash:
    """Test RefreshTokenRepository.revoke_by_hash()."""

    async def test_revokes_token(self, store: DatabaseStore, test_user: User):
        """Matching token is revoked."""
        await store.refresh_tokens.issue(test_user, "hash-0", _expires())

        await store.refresh_tokens.revoke_by_hash("hash-0")

        token = await store.refresh_tokens.find_by_hash("hash-0")
        assert token is not None
        assert token.is_revoked is True

    async def test_unknown_hash_is_noop(self, store: DatabaseStore):
        """Unknown hash does not raise."""
        await store.refresh_tokens.revoke_by_hash(_UNKNOWN_HASH)

    async def test_keeps_original_revocation_time(
        self, store: DatabaseStore, test_user: User
    ):
        """Revoking twice does not move revoked_at."""
        await store.refresh_tokens.issue(test_user, "hash-0", _expires())
        await store.refresh_tokens.revoke_by_hash("hash-0")
        first = await store.refresh_tokens.find_by_hash("hash-0")

        await store.refresh_tokens.revoke_by_hash("hash-0")
        second = await store.refresh_tokens.find_by_hash("hash-0")

        assert first is not None
        assert second is not None
        assert second.revoked_at == first.revoked_at


class TestRevokeFamilyFrom:
    """Test RefreshTokenRepository.revoke_family_from()."""

    async def test_revokes_single_active_token(
        self, store: DatabaseStore, test_user: User
    ):
        """A chain of one is just that token."""
        token = await store.refresh_tokens.issue(test_user, "hash-0", _expires())

        revoked = await store.refresh_tokens.revoke_family_from(token)

        assert revoked == 1
        assert token.is_revoked is True

    async def test_revokes_every_descendant(
        self, store: DatabaseStore, test_user: User
    ):
        """Walking from the root revokes the active tail."""
        tokens = await _chain(store, test_user, 4)

        revoked = await store.refresh_tokens.revoke_family_from(tokens[0])

        # Rotation already revoked the first three.
        assert revoked == 1
        for n in range(4):
            token = await store.refresh_tokens.find_by_hash(f"hash-{n}")
            assert token is not None
            assert token.is_revoked is True

    async def test_walks_forward_only(self, store: DatabaseStore, db: Database, test_user: User):
        """Ancestors of the start token are not touched."""
        tokens = await _chain(store, test_user, 3)
        await _reactivate(db, tokens)

        revoked = await store.refresh_tokens.revoke_family_from(tokens[1])

        assert revoked == 2
        root = await store.refresh_tokens.find_by_hash("hash-0")
        assert root is not None
        assert root.is_revoked is False

    async def test_stops_at_missing_successor(
        self, store: DatabaseStore, db: Database, test_user: User
    ):
        """A dangling replaced_by ends the walk without error."""
        tokens = await _chain(store, test_user, 2)
        async with db.transaction() as session:
            await session.execute(delete(RefreshToken).where(RefreshToken.id == tokens[1].id))

        with capture_logs() as logs:
            revoked = await store.refresh_tokens.revoke_family_from(tokens[0])

        assert revoked == 0
        events = [e["event"] for e in logs]
        assert "refresh_token_family_broken" in events

    async def test_stops_on_cycle(self, store: DatabaseStore, db: Database, test_user: User):
        """A replaced_by cycle is detected and the walk terminates."""
        tokens = await _chain(store, test_user, 2)
        async with db.transaction() as session:
            await session.execute(
                update(RefreshToken)
                .where(RefreshToken.id == tokens[1].id)
                .values(replaced_by=tokens[0].id)
            )

        with capture_logs() as logs:
            revoked = await store.refresh_tokens.revoke_family_from(tokens[0])

        assert revoked == 1
        cycle = [e for e in logs if e["event"] == "refresh_token_family_cycle"]
        assert len(cycle) == 1
        assert cycle[0]["log_level"] == "error"

    async def test_stops_at_length_cap(self, db: Database, store: DatabaseStore, test_user: User):
        """The walk never visits more than family_max_length tokens."""
        tokens = await _chain(store, test_user, 4)
        await _reactivate(db, tokens)
        capped = RefreshTokenRepository(db, family_max_length=2)

        with capture_logs() as logs:
            revoked = await capped.revoke_family_from(tokens[0])

        assert revoked == 2
        assert "refresh_token_family_truncated" in [e["event"] for e in logs]
        tail = await store.refresh_tokens.find_by_hash("hash-3")
        assert tail is not None
        assert tail.is_revoked is False

    async def test_logs_summary(self, store: DatabaseStore, test_user: User):
        """Family revocation emits one summary audit event."""
        token = await store.refresh_tokens.issue(test_user, "hash-0", _expires())

        with capture_logs() as logs:
            await store.refresh_tokens.revoke_family_from(token)

        summary = [e for e in logs if e["event"] == "refresh_token_family_revoked"]
        assert len(summary) == 1
        assert summary[0]["revoked"] == 1
        assert summary[0]["walked"] == 1
        assert summary[0]["user_id"] == str(test_user.id)

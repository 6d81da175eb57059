"""Tests for the token and usage record repositories."""

from datetime import timedelta

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from token_redemption_core.db import RedeemableToken, User, utc_now
from token_redemption_core.exceptions import ConflictError, ErrorCode, NotFoundError, StoreError
from token_redemption_core.repositories import TokenRepository, UsageRecordRepository


@pytest.fixture
def token_repo(db_session):
    return TokenRepository(db_session)


@pytest.fixture
def usage_repo(db_session):
    return UsageRecordRepository(db_session)


def token_data(code="TKN-REPO0001", **overrides):
    data = {"code": code, "name": "Repo token", "usage_limit": 2}
    data.update(overrides)
    return data


class TestTokenRepository:
    """Test TokenRepository queries and writes."""

    def test_create_and_get(self, token_repo):
        created = token_repo.create(token_data())

        assert token_repo.get_by_code("TKN-REPO0001") is created
        assert token_repo.get_by_code("TKN-NOPE0000") is None

    def test_create_duplicate_code(self, token_repo):
        token_repo.create(token_data())

        with pytest.raises(ConflictError) as exc_info:
            token_repo.create(token_data(name="Again"))

        assert exc_info.value.error_code == ErrorCode.DUPLICATE

    def test_create_constraint_violation(self, token_repo):
        with pytest.raises(StoreError) as exc_info:
            token_repo.create(token_data(usage_limit=0))

        assert exc_info.value.error_code == ErrorCode.CONSTRAINT_VIOLATION

    def test_get_for_update_reloads_row(self, token_repo, db_session):
        """Test a locked read reflects the stored values, not stale attributes."""
        token = token_repo.create(token_data())
        db_session.commit()
        db_session.execute(
            update(RedeemableToken)
            .where(RedeemableToken.id == token.id)
            .values(usage_count=1)
            .execution_options(synchronize_session=False)
        )
        assert token.usage_count == 0

        locked = token_repo.get_by_code("TKN-REPO0001", for_update=True)

        assert locked is token
        assert locked.usage_count == 1

    def test_get_with_creator(self, token_repo, db_session):
        user = User(username="bob")
        db_session.add(user)
        db_session.flush()
        token_repo.create(token_data(creator_id=user.id))

        token, creator_name = token_repo.get_with_creator("TKN-REPO0001")

        assert token.code == "TKN-REPO0001"
        assert creator_name == "bob"
        assert token_repo.get_with_creator("TKN-NOPE0000") is None

    def test_increment_and_set_active(self, token_repo):
        token = token_repo.create(token_data())
        before = token.updated_at

        token_repo.increment_usage(token)
        token_repo.set_active(token, False)

        assert token.usage_count == 1
        assert token.is_active is False
        assert token.updated_at >= before

    def test_increment_beyond_limit_rejected_by_store(self, token_repo):
        token = token_repo.create(token_data(usage_limit=1))
        token_repo.increment_usage(token)

        with pytest.raises(StoreError):
            token_repo.increment_usage(token)

    def test_deactivate_expired(self, token_repo):
        now = utc_now()
        token_repo.create(token_data("TKN-OLD00001", expires_at=now - timedelta(minutes=1)))
        token_repo.create(token_data("TKN-NEW00001", expires_at=now + timedelta(minutes=1)))
        token_repo.create(token_data("TKN-NONE0001"))

        assert token_repo.deactivate_expired(now) == 1
        assert token_repo.deactivate_expired(now) == 0

    def test_statistics(self, token_repo):
        now = utc_now()
        token_repo.create(token_data("TKN-STAT0001"))
        token_repo.create(token_data("TKN-STAT0002", expires_at=now - timedelta(days=1)))
        exhausted = token_repo.create(token_data("TKN-STAT0003", usage_limit=1))
        token_repo.increment_usage(exhausted)

        stats = token_repo.statistics(now)

        assert stats == {
            "total_tokens": 3,
            "active_tokens": 3,
            "inactive_tokens": 0,
            "expired_tokens": 1,
            "exhausted_tokens": 1,
        }


class TestUsageRecordRepository:
    """Test the usage ledger repository."""

    def test_record_list_and_count(self, token_repo, usage_repo, db_session):
        user = User(username="carol", email="carol@example.com")
        db_session.add(user)
        token = token_repo.create(token_data())

        first = usage_repo.record_usage(token.id, "first")
        second = usage_repo.record_usage(
            token.id, "second", metadata={"k": "v"}, user_id=user.id
        )
        second.used_at = first.used_at + timedelta(seconds=1)
        db_session.flush()

        rows = usage_repo.list_for_token(token.id)

        assert [record.id for record, _, _ in rows] == [second.id, first.id]
        assert rows[0][1:] == ("carol", "carol@example.com")
        assert rows[1][1:] == (None, None)
        assert usage_repo.count_for_token(token.id) == 2
        assert usage_repo.count_all() == 2

    def test_delete_for_token(self, token_repo, usage_repo):
        token = token_repo.create(token_data())
        other = token_repo.create(token_data("TKN-REPO0002"))
        for _ in range(3):
            usage_repo.record_usage(token.id, "use")
        usage_repo.record_usage(other.id, "use")

        assert usage_repo.delete_for_token(token.id) == 3
        assert usage_repo.count_for_token(token.id) == 0
        assert usage_repo.count_all() == 1


class TestErrorTranslation:
    """Test database errors surface as typed errors."""

    def test_operational_error_becomes_store_error(self, token_repo):
        with pytest.raises(StoreError) as exc_info:
            with token_repo._session_operation("probe"):
                raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        assert exc_info.value.error_code == ErrorCode.CONNECTION_ERROR

    def test_typed_errors_pass_through(self, token_repo):
        with pytest.raises(NotFoundError):
            with token_repo._session_operation("probe", is_read_only=True):
                raise NotFoundError("missing")

    def test_unexpected_error_becomes_internal(self, token_repo):
        with pytest.raises(StoreError) as exc_info:
            with token_repo._session_operation("probe", is_read_only=True):
                raise RuntimeError("boom")

        assert exc_info.value.error_code == ErrorCode.INTERNAL_ERROR

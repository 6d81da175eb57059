"""Tests for the transactional unit of work."""

from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from token_redemption_core.context.unit_of_work import UnitOfWork
from token_redemption_core.exceptions import ErrorCode, NotFoundError, StoreError
from token_redemption_core.repositories import TokenRepository, UsageRecordRepository


def token_data(code="TKN-UOW00001"):
    return {"code": code, "name": "UoW token", "usage_limit": 1}


class TestUnitOfWork:
    """Commit on success, roll back on failure, always close."""

    def test_exposes_repositories(self, db_manager):
        with UnitOfWork(db_manager, "probe") as uow:
            assert isinstance(uow.tokens, TokenRepository)
            assert isinstance(uow.usage_records, UsageRecordRepository)
            assert uow.tokens.session is uow.session

        assert uow.session is None

    def test_commits_on_success(self, db_manager):
        with UnitOfWork(db_manager) as uow:
            uow.tokens.create(token_data())

        with UnitOfWork(db_manager) as uow:
            assert uow.tokens.get_by_code("TKN-UOW00001") is not None

    def test_rolls_back_typed_error(self, db_manager):
        with pytest.raises(NotFoundError):
            with UnitOfWork(db_manager) as uow:
                uow.tokens.create(token_data())
                raise NotFoundError("abort")

        with UnitOfWork(db_manager) as uow:
            assert uow.tokens.get_by_code("TKN-UOW00001") is None

    def test_wraps_raw_sqlalchemy_error(self, db_manager):
        with pytest.raises(StoreError) as exc_info:
            with UnitOfWork(db_manager, "probe") as uow:
                uow.tokens.create(token_data())
                raise SQLAlchemyError("lost connection")

        assert exc_info.value.context["operation"] == "probe"
        assert isinstance(exc_info.value.__cause__, SQLAlchemyError)

        with UnitOfWork(db_manager) as uow:
            assert uow.tokens.get_by_code("TKN-UOW00001") is None

    def test_commit_failure_becomes_store_error(self, db_manager):
        failure = OperationalError("COMMIT", {}, Exception("disk I/O error"))

        with patch("sqlalchemy.orm.Session.commit", side_effect=failure):
            with pytest.raises(StoreError) as exc_info:
                with UnitOfWork(db_manager, "probe") as uow:
                    uow.tokens.create(token_data())

        assert exc_info.value.error_code == ErrorCode.CONNECTION_ERROR

        with UnitOfWork(db_manager) as uow:
            assert uow.tokens.get_by_code("TKN-UOW00001") is None

    def test_rollback_failure_does_not_mask_original(self, db_manager):
        with patch("sqlalchemy.orm.Session.rollback", side_effect=SQLAlchemyError("gone")):
            with pytest.raises(NotFoundError):
                with UnitOfWork(db_manager):
                    raise NotFoundError("original")

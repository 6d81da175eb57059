"""Tests for operation logging and correlation handling."""

from unittest.mock import Mock

import pytest

from token_redemption_core.context.operation_context import OperationHandler, operation
from token_redemption_core.exceptions import (
    NotFoundError,
    StoreError,
    get_correlation_id,
    set_correlation_id,
)


class Widget:
    @operation()
    def run(self, value):
        return get_correlation_id(), value

    @operation("custom.name")
    def named(self):
        return "ok"

    @operation
    def bare(self):
        return "bare"


class TestOperationHandler:
    """Test the operation context manager."""

    def setup_method(self):
        self.logger = Mock()
        self.handler = OperationHandler(logger=self.logger)

    def test_success_logs_enter_and_exit(self):
        with self.handler.operation("consume_token", code="TKN-ABCD1234") as ctx:
            ctx.add_context(usage_count=1)

        enter, exit_ = self.logger.info.call_args_list
        assert enter.args[0] == "ENTER: consume_token"
        assert exit_.args[0] == "EXIT: consume_token"
        assert exit_.kwargs["extra"]["status"] == "success"
        assert exit_.kwargs["extra"]["usage_count"] == 1
        assert exit_.kwargs["extra"]["duration_ms"] >= 0

    def test_client_error_logged_as_warning_and_reraised(self):
        with pytest.raises(NotFoundError) as exc_info:
            with self.handler.operation("get_token"):
                raise NotFoundError("missing")

        assert exc_info.value.context["operation_name"] == "get_token"
        assert self.logger.warning.call_count == 1
        self.logger.error.assert_not_called()

    def test_server_error_logged_as_error(self):
        with pytest.raises(StoreError):
            with self.handler.operation("consume_token"):
                raise StoreError("commit failed")

        assert self.logger.error.call_count == 1

    def test_unexpected_error_logged_with_traceback(self):
        with pytest.raises(KeyError):
            with self.handler.operation("consume_token"):
                raise KeyError("x")

        assert self.logger.exception.call_count == 1

    def test_correlation_id_set_and_cleared(self):
        with self.handler.operation("op") as ctx:
            assert get_correlation_id() == ctx.correlation_id

        assert get_correlation_id() is None

    def test_existing_correlation_id_is_kept(self):
        set_correlation_id("outer")

        with self.handler.operation("op") as ctx:
            assert ctx.correlation_id == "outer"

        assert get_correlation_id() == "outer"


class TestOperationDecorator:
    """Test the operation decorator."""

    def test_method_runs_inside_operation(self):
        correlation_id, value = Widget().run(5)

        assert correlation_id is not None
        assert value == 5
        assert get_correlation_id() is None

    def test_explicit_name_and_bare_usage(self):
        assert Widget().named() == "ok"
        assert Widget().bare() == "bare"
        assert Widget.run.__name__ == "run"

"""Module-level engine lifecycle and transactional scope."""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from validation_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    is_postgres,
    reset_engine,
    session_scope,
)
from validation_kernel.domain.clock import DeterministicClock
from validation_kernel.models.threshold import ValidationThresholdModel
from validation_kernel.services.auditor_service import AuditorService
from validation_kernel.services.threshold_service import ThresholdService


@pytest.fixture
def initialized(tmp_path):
    reset_engine()
    engine = init_engine_from_url(f"sqlite:///{tmp_path / 'scope.db'}")
    create_tables()
    yield engine
    reset_engine()


def count_thresholds() -> int:
    with get_session() as session:
        return session.scalar(select(func.count()).select_from(ValidationThresholdModel))


def create_expense_ladder(session):
    clock = DeterministicClock()
    service = ThresholdService(session, AuditorService(session, clock), clock)
    return service.create_threshold("ws", "expense", Decimal("1"), Decimal("2"), Decimal("3"))


class TestEngineLifecycle:

    def test_uninitialized_access_raises(self):
        reset_engine()
        for accessor in (get_engine, get_session, get_session_factory):
            with pytest.raises(RuntimeError, match="not initialized"):
                accessor()
        assert not is_postgres()

    def test_init_exposes_engine_and_factory(self, initialized):
        assert get_engine() is initialized
        assert get_session_factory().kw["bind"] is initialized
        assert not is_postgres()

    def test_reset_forgets_engine(self, initialized):
        reset_engine()
        with pytest.raises(RuntimeError):
            get_engine()


class TestSessionScope:

    def test_commits_on_success(self, initialized):
        with session_scope() as session:
            create_expense_ladder(session)
        assert count_thresholds() == 1

    def test_rolls_back_and_reraises(self, initialized, captured_logs):
        with pytest.raises(ZeroDivisionError):
            with session_scope() as session:
                create_expense_ladder(session)
                1 / 0
        assert count_thresholds() == 0
        assert any(r["message"] == "transaction_rolled_back" for r in captured_logs())

    def test_explicit_factory(self, session_factory):
        with session_scope(session_factory) as session:
            create_expense_ladder(session)
        with session_factory() as session:
            assert session.scalar(select(func.count()).select_from(ValidationThresholdModel)) == 1

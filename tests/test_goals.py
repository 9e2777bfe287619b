from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import DEFAULT_GOAL_COLOR
from schemas import GoalIn, GoalUpdate
from services import DomainValidationError, GoalService


def _session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def test_goal_defaults() -> None:
    with _session() as session:
        goal = GoalService(session).create(
            GoalIn(name=" Trip ", target_amount=Decimal("1000"))
        )

        assert goal.name == "Trip"
        assert goal.current_amount == Decimal("0")
        assert goal.color == DEFAULT_GOAL_COLOR
        assert goal.deadline is None


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ({"name": "", "target_amount": "100"}, "Goal name is required"),
        ({"target_amount": "100"}, "Goal name is required"),
        ({"name": "Car", "target_amount": "0"}, "Target amount must be greater than 0"),
        ({"name": "Car", "target_amount": "0.001"}, "Target amount must be greater than 0"),
        (
            {"name": "Car", "target_amount": "100", "current_amount": "-1"},
            "Current amount cannot be negative",
        ),
        (
            {"name": "Car", "target_amount": "100", "current_amount": "150"},
            "Current amount cannot exceed target amount",
        ),
    ],
)
def test_goal_create_rules(payload: dict, message: str) -> None:
    with _session() as session:
        with pytest.raises(DomainValidationError) as excinfo:
            GoalService(session).create(GoalIn(**payload))

        assert excinfo.value.message == message


def test_update_checks_against_stored_target() -> None:
    with _session() as session:
        service = GoalService(session)
        goal = service.create(
            GoalIn(name="Car", target_amount=Decimal("500"), current_amount=Decimal("100"))
        )

        with pytest.raises(DomainValidationError, match="cannot exceed target"):
            service.update(goal.id, GoalUpdate(current_amount=Decimal("600")))

        with pytest.raises(DomainValidationError, match="cannot be empty"):
            service.update(goal.id, GoalUpdate(name="  "))

        updated = service.update(goal.id, GoalUpdate(current_amount=Decimal("500")))
        assert updated.current_amount == Decimal("500")
        assert updated.name == "Car"


def test_deadline_cleared_only_when_sent() -> None:
    with _session() as session:
        service = GoalService(session)
        goal = service.create(
            GoalIn(name="Car", target_amount=Decimal("500"), deadline=date(2026, 12, 1))
        )

        kept = service.update(goal.id, GoalUpdate(name="New car"))
        assert kept.deadline == date(2026, 12, 1)

        cleared = service.update(goal.id, GoalUpdate(deadline=None))
        assert cleared.deadline is None


def test_sub_cent_target_rejected_on_update() -> None:
    with _session() as session:
        service = GoalService(session)
        goal = service.create(GoalIn(name="Car", target_amount=Decimal("500")))

        with pytest.raises(DomainValidationError, match="greater than 0"):
            service.update(goal.id, GoalUpdate(target_amount=Decimal("0.001")))

        assert service.get(goal.id).target_amount == Decimal("500.00")

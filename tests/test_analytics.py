from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

import pytest

import analytics
from models import TransactionType
from periods import resolve_period

INCOME = TransactionType.income
EXPENSE = TransactionType.expense


@dataclass
class Cat:
    id: int
    name: str
    type: TransactionType
    color: str = "#111111"
    budget: Optional[float] = None


@dataclass
class Txn:
    title: str
    amount: float
    type: TransactionType
    category_id: int
    date: date


@dataclass
class Goal:
    id: int
    target_amount: float
    current_amount: float


def test_summary_balance_is_income_minus_expense() -> None:
    summary = analytics.summarize(
        [
            Txn("Pay", 1000, INCOME, 1, date(2025, 1, 1)),
            Txn("Rent", 400, EXPENSE, 2, date(2025, 1, 2)),
            Txn("Food", 50.5, EXPENSE, 3, date(2025, 1, 3)),
        ]
    )

    assert summary.total_income == 1000
    assert summary.total_expense == 450.5
    assert summary.total_balance == 549.5


def test_monthly_evolution_spans_year_boundary() -> None:
    today = date(2025, 3, 14)
    transactions = [
        Txn("old", 999, INCOME, 1, date(2024, 3, 31)),
        Txn("a", 100, INCOME, 1, date(2024, 4, 1)),
        Txn("b", 30, EXPENSE, 2, date(2024, 12, 31)),
        Txn("c", 50, INCOME, 1, date(2025, 3, 1)),
        Txn("future", 7, EXPENSE, 2, date(2025, 4, 1)),
    ]

    buckets = analytics.monthly_evolution(transactions, today)

    assert len(buckets) == 12
    assert buckets[0].label == "04/2024"
    assert buckets[-1].label == "03/2025"
    assert buckets[0].income == 100
    assert buckets[8].expense == 30
    assert buckets[-1].cumulative_income == 150
    assert buckets[-1].cumulative_expense == 30
    incomes = [b.cumulative_income for b in buckets]
    assert incomes == sorted(incomes)


def test_budget_status_only_counts_current_month() -> None:
    today = date(2025, 6, 20)
    categories = [
        Cat(1, "Food", EXPENSE, budget=200),
        Cat(2, "Fun", EXPENSE, budget=100),
        Cat(3, "Rent", EXPENSE),
        Cat(4, "Salary", INCOME),
    ]
    transactions = [
        Txn("groceries", 150, EXPENSE, 1, date(2025, 6, 2)),
        Txn("last month", 500, EXPENSE, 1, date(2025, 5, 30)),
        Txn("concert", 130, EXPENSE, 2, date(2025, 6, 10)),
        Txn("rent", 900, EXPENSE, 3, date(2025, 6, 1)),
    ]

    rows = analytics.budget_status(categories, transactions, today)

    assert [r.name for r in rows] == ["Fun", "Food"]
    fun, food = rows
    assert fun.raw_percentage == pytest.approx(130)
    assert fun.percentage == 100
    assert fun.remaining == 0
    assert fun.level == "danger"
    assert food.spent == 150
    assert food.level == "warning"


@pytest.mark.parametrize(
    ("pct", "level"), [(0, "ok"), (69.9, "ok"), (70, "warning"), (90, "danger")]
)
def test_budget_levels(pct: float, level: str) -> None:
    assert analytics.budget_level(pct) == level


def test_expense_slices_skip_empty_categories() -> None:
    categories = [Cat(1, "Food", EXPENSE), Cat(2, "Fun", EXPENSE), Cat(3, "Pay", INCOME)]
    transactions = [
        Txn("x", 20, EXPENSE, 1, date(2025, 1, 1)),
        Txn("y", 5, INCOME, 3, date(2025, 1, 1)),
    ]

    slices = analytics.expense_by_category(categories, transactions)

    assert [(s.name, s.value) for s in slices] == [("Food", 20)]


def test_flow_omits_balance_node_when_spending_exceeds_income() -> None:
    categories = [Cat(1, "Pay", INCOME), Cat(2, "Rent", EXPENSE)]
    transactions = [
        Txn("pay", 100, INCOME, 1, date(2025, 2, 1)),
        Txn("rent", 300, EXPENSE, 2, date(2025, 2, 1)),
    ]
    period = resolve_period("current", today=date(2025, 2, 10))

    graph = analytics.build_flow(categories, transactions, period)

    assert [n.name for n in graph.nodes] == ["Wallet", "Pay", "Rent"]
    assert graph.period == "current"
    assert len(graph.links) == 2

    outside = resolve_period("current", today=date(2025, 3, 1))
    assert analytics.build_flow(categories, transactions, outside).nodes == []


def test_goal_allocation_cap() -> None:
    goals = [Goal(1, 1000, 300), Goal(2, 500, 100)]

    with pytest.raises(analytics.GoalAllocationError) as excinfo:
        analytics.check_goal_allocation(goals, 500, 150, 1000)
    assert excinfo.value.available == 100
    assert "only 100.00 available" in str(excinfo.value)

    # editing goal 1 frees its own 300
    analytics.check_goal_allocation(goals, 500, 400, 1000, editing_id=1)

    with pytest.raises(analytics.GoalAllocationError, match="cannot exceed the goal target"):
        analytics.check_goal_allocation(goals, 10_000, 600, 500)

    assert analytics.available_to_allocate(350, goals) == 0


def test_goal_progress_estimates_months() -> None:
    progress = analytics.goal_progress(Goal(1, 1000, 250), average_balance=200)

    assert progress.percentage == 25
    assert progress.remaining == 750
    assert progress.months_to_goal == 4

    assert analytics.goal_progress(Goal(2, 100, 100), 200).months_to_goal is None
    assert analytics.goal_progress(Goal(3, 100, 10), -50).months_to_goal is None


def test_filter_and_sort_transactions() -> None:
    transactions = [
        Txn("Lunch at work", 12, EXPENSE, 1, date(2025, 1, 3)),
        Txn("Salary", 2000, INCOME, 2, date(2025, 1, 1)),
        Txn("lunch friday", 30, EXPENSE, 1, date(2025, 1, 5)),
        Txn("Bus", 3, EXPENSE, 3, date(2025, 1, 4)),
    ]

    found = analytics.filter_transactions(transactions, query="LUNCH")
    assert [t.title for t in found] == ["lunch friday", "Lunch at work"]

    expenses = analytics.filter_transactions(
        transactions, txn_type=EXPENSE, sort_by="amount", order="asc"
    )
    assert [t.amount for t in expenses] == [3, 12, 30]

    by_category = analytics.filter_transactions(transactions, category_id=1, order="asc")
    assert [t.title for t in by_category] == ["Lunch at work", "lunch friday"]


def test_money_totals_are_exact_decimals() -> None:
    summary = analytics.summarize(
        [
            Txn("Tip", 0.3, INCOME, 1, date(2025, 1, 1)),
            Txn("Gum", 0.1, EXPENSE, 2, date(2025, 1, 2)),
        ]
    )

    assert summary.total_balance == Decimal("0.2")
    # the whole balance can be allocated
    analytics.check_goal_allocation([], summary.total_balance, 0.2, 1)
    assert analytics.available_to_allocate(summary.total_balance, [Goal(1, 1, 0.2)]) == 0

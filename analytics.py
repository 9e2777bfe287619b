"""Aggregations behind the dashboard, flow and goals views.

Every function here is a linear scan over already-loaded records. They accept
ORM entities and the client-side records from ``client`` alike: anything with
the attributes ``type``, ``amount``, ``category_id`` and ``date`` is a
transaction, anything with ``id``, ``name``, ``type``, ``color`` and ``budget``
is a category.

Money is accumulated as ``Decimal``; float amounts from client records are
converted through their shortest repr, so ``0.1`` counts as ``Decimal("0.1")``.
Percentages stay floats.
"""

from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Literal, Optional, Sequence

from models import TransactionType
from periods import Period, trailing_months


HUB_NODE = ("Wallet", "#3b82f6")
BALANCE_NODE = ("Positive balance", "#10b981")

BUDGET_WARNING_PCT = 70.0
BUDGET_DANGER_PCT = 90.0

ZERO = Decimal("0")

SortField = Literal["date", "amount"]
SortOrder = Literal["asc", "desc"]


class GoalAllocationError(ValueError):
    def __init__(self, message: str, available: Optional[Decimal] = None) -> None:
        super().__init__(message)
        self.available = available


@dataclass(frozen=True)
class FinancialSummary:
    total_income: Decimal
    total_expense: Decimal
    total_balance: Decimal


@dataclass(frozen=True)
class CategorySlice:
    category_id: int
    name: str
    color: str
    value: Decimal


@dataclass(frozen=True)
class BudgetStatus:
    category_id: int
    name: str
    color: str
    budget: Decimal
    spent: Decimal
    remaining: Decimal
    percentage: float
    raw_percentage: float
    level: str


@dataclass(frozen=True)
class MonthBucket:
    label: str
    year: int
    month: int
    income: Decimal
    expense: Decimal
    cumulative_income: Decimal
    cumulative_expense: Decimal


@dataclass(frozen=True)
class FlowNode:
    name: str
    color: str


@dataclass(frozen=True)
class FlowLink:
    source: int
    target: int
    value: Decimal


@dataclass(frozen=True)
class FlowGraph:
    period: str
    nodes: list[FlowNode]
    links: list[FlowLink]


@dataclass(frozen=True)
class GoalProgress:
    goal_id: Any
    percentage: float
    remaining: Decimal
    months_to_goal: Optional[int]


def to_money(value: Any) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _total(transactions: Iterable[Any], txn_type: TransactionType) -> Decimal:
    return sum((to_money(t.amount) for t in transactions if t.type == txn_type), ZERO)


def _is_expense_category(category: Any) -> bool:
    return category.type == TransactionType.expense


def summarize(transactions: Iterable[Any]) -> FinancialSummary:
    income = ZERO
    expense = ZERO
    for txn in transactions:
        if txn.type == TransactionType.income:
            income += to_money(txn.amount)
        elif txn.type == TransactionType.expense:
            expense += to_money(txn.amount)
    return FinancialSummary(
        total_income=income,
        total_expense=expense,
        total_balance=income - expense,
    )


def _totals_by_category(
    transactions: Iterable[Any], txn_type: TransactionType
) -> dict[Any, Decimal]:
    totals: dict[Any, Decimal] = defaultdict(Decimal)
    for txn in transactions:
        if txn.type == txn_type:
            totals[txn.category_id] += to_money(txn.amount)
    return totals


def expense_by_category(
    categories: Sequence[Any], transactions: Sequence[Any]
) -> list[CategorySlice]:
    totals = _totals_by_category(transactions, TransactionType.expense)
    slices = []
    for cat in categories:
        if not _is_expense_category(cat):
            continue
        value = totals.get(cat.id, ZERO)
        if value > 0:
            slices.append(CategorySlice(cat.id, cat.name, cat.color, value))
    return slices


def budget_level(raw_percentage: float) -> str:
    if raw_percentage >= BUDGET_DANGER_PCT:
        return "danger"
    if raw_percentage >= BUDGET_WARNING_PCT:
        return "warning"
    return "ok"


def budget_status(
    categories: Sequence[Any], transactions: Sequence[Any], today: date
) -> list[BudgetStatus]:
    spent_by_category: dict[Any, Decimal] = defaultdict(Decimal)
    for txn in transactions:
        if txn.date.year == today.year and txn.date.month == today.month:
            spent_by_category[txn.category_id] += to_money(txn.amount)

    rows = []
    for cat in categories:
        budget = to_money(cat.budget)
        if not _is_expense_category(cat) or budget <= 0:
            continue
        spent = spent_by_category.get(cat.id, ZERO)
        raw = float(spent / budget * 100)
        rows.append(
            BudgetStatus(
                category_id=cat.id,
                name=cat.name,
                color=cat.color,
                budget=budget,
                spent=spent,
                remaining=max(ZERO, budget - spent),
                percentage=min(raw, 100.0),
                raw_percentage=raw,
                level=budget_level(raw),
            )
        )
    rows.sort(key=lambda row: row.raw_percentage, reverse=True)
    return rows


def monthly_evolution(
    transactions: Sequence[Any], today: date, months: int = 12
) -> list[MonthBucket]:
    income_by_month: dict[tuple[int, int], Decimal] = defaultdict(Decimal)
    expense_by_month: dict[tuple[int, int], Decimal] = defaultdict(Decimal)
    for txn in transactions:
        key = (txn.date.year, txn.date.month)
        if txn.type == TransactionType.income:
            income_by_month[key] += to_money(txn.amount)
        elif txn.type == TransactionType.expense:
            expense_by_month[key] += to_money(txn.amount)

    buckets = []
    running_income = ZERO
    running_expense = ZERO
    for start in trailing_months(today, months):
        key = (start.year, start.month)
        income = income_by_month.get(key, ZERO)
        expense = expense_by_month.get(key, ZERO)
        running_income += income
        running_expense += expense
        buckets.append(
            MonthBucket(
                label=f"{start.month:02d}/{start.year}",
                year=start.year,
                month=start.month,
                income=income,
                expense=expense,
                cumulative_income=running_income,
                cumulative_expense=running_expense,
            )
        )
    return buckets


def build_flow(
    categories: Sequence[Any], transactions: Sequence[Any], period: Period
) -> FlowGraph:
    in_period = [t for t in transactions if period.contains(t.date)]
    if not in_period:
        return FlowGraph(period.slug, [], [])

    nodes = [FlowNode(*HUB_NODE)]
    links: list[FlowLink] = []
    hub = 0

    income_totals = _totals_by_category(in_period, TransactionType.income)
    for cat in categories:
        if cat.type != TransactionType.income:
            continue
        amount = income_totals.get(cat.id, ZERO)
        if amount > 0:
            nodes.append(FlowNode(cat.name, cat.color))
            links.append(FlowLink(len(nodes) - 1, hub, amount))

    expense_totals = _totals_by_category(in_period, TransactionType.expense)
    for cat in categories:
        if not _is_expense_category(cat):
            continue
        amount = expense_totals.get(cat.id, ZERO)
        if amount > 0:
            nodes.append(FlowNode(cat.name, cat.color))
            links.append(FlowLink(hub, len(nodes) - 1, amount))

    balance = _total(in_period, TransactionType.income) - _total(
        in_period, TransactionType.expense
    )
    if balance > 0:
        nodes.append(FlowNode(*BALANCE_NODE))
        links.append(FlowLink(hub, len(nodes) - 1, balance))

    return FlowGraph(period.slug, nodes, links)


def total_allocated(goals: Iterable[Any]) -> Decimal:
    return sum((to_money(g.current_amount) for g in goals), ZERO)


def available_to_allocate(balance: Any, goals: Iterable[Any]) -> Decimal:
    return max(ZERO, to_money(balance) - total_allocated(goals))


def check_goal_allocation(
    goals: Sequence[Any],
    balance: Any,
    current_amount: Any,
    target_amount: Any,
    *,
    editing_id: Any = None,
) -> None:
    """Reject an allocation that would overdraw the balance or overshoot the target.

    ``editing_id`` names the goal being edited; its present allocation is not
    counted against the balance.
    """
    balance = to_money(balance)
    current_amount = to_money(current_amount)
    others = total_allocated(g for g in goals if g.id != editing_id)
    if others + current_amount > balance:
        available = balance - others
        raise GoalAllocationError(
            f"Allocation limit exceeded: only {available:.2f} available to allocate",
            available=available,
        )
    if current_amount > to_money(target_amount):
        raise GoalAllocationError("Saved amount cannot exceed the goal target")


def average_monthly_balance(transactions: Sequence[Any], balance: Any) -> Decimal:
    months = {(t.date.year, t.date.month) for t in transactions}
    return to_money(balance) / max(1, len(months))


def goal_progress(goal: Any, average_balance: Any) -> GoalProgress:
    target = to_money(goal.target_amount)
    current = to_money(goal.current_amount)
    average_balance = to_money(average_balance)
    percentage = min(100.0, float(current / target * 100)) if target > 0 else 0.0
    remaining = max(ZERO, target - current)
    months = None
    if average_balance > 0 and remaining > 0:
        months = math.ceil(remaining / average_balance)
    return GoalProgress(goal.id, percentage, remaining, months)


def filter_transactions(
    transactions: Iterable[Any],
    *,
    category_id: Any = None,
    txn_type: Optional[TransactionType] = None,
    query: Optional[str] = None,
    sort_by: SortField = "date",
    order: SortOrder = "desc",
) -> list[Any]:
    needle = (query or "").strip().lower()
    items = [
        t
        for t in transactions
        if (category_id is None or t.category_id == category_id)
        and (txn_type is None or t.type == txn_type)
        and needle in t.title.lower()
    ]
    if sort_by == "amount":
        key = lambda t: to_money(t.amount)  # noqa: E731
    else:
        key = lambda t: t.date  # noqa: E731
    # stable sort keeps the incoming order between equal keys
    items.sort(key=key, reverse=(order == "desc"))
    return items

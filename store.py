"""Client-side application state.

``FinanceStore`` owns the transactions, categories and goals loaded from the
API and is the only place that mutates them. Reads go through the plain
attributes and the derived ``summary``; writes go through the CRUD methods,
which call the API first and then bring local state in line with the server's
answer. ``add_transaction`` is the exception: it inserts a tentative record
before the call and restores the previous list if the call fails.
"""

from __future__ import annotations

import itertools
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal
from typing import Any, Optional

import analytics
from client import (
    ApiUnreachableError,
    CategoryRecord,
    FinanceApiClient,
    GoalRecord,
    TransactionRecord,
    map_category,
    map_goal,
    map_transaction,
)
from models import TransactionType
from periods import local_today


logger = logging.getLogger(__name__)


class FinanceStore:
    def __init__(self, client: FinanceApiClient, max_workers: int = 3) -> None:
        self.client = client
        self.max_workers = max_workers
        self.transactions: list[TransactionRecord] = []
        self.categories: list[CategoryRecord] = []
        self.goals: list[GoalRecord] = []
        self.loading = False
        self._tentative_ids = itertools.count(-1, -1)

    @property
    def summary(self) -> analytics.FinancialSummary:
        return analytics.summarize(self.transactions)

    @property
    def available_to_allocate(self) -> Decimal:
        return analytics.available_to_allocate(self.summary.total_balance, self.goals)

    def _category_map(self) -> dict[Any, CategoryRecord]:
        return {c.id: c for c in self.categories}

    def refresh(self) -> None:
        """Reload everything; state is replaced only once all three loads succeed."""
        self.loading = True
        try:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                txn_future = pool.submit(self.client.list_transactions)
                cat_future = pool.submit(self.client.list_categories)
                goal_future = pool.submit(self.client.list_goals)
                txn_data = txn_future.result()
                cat_data = cat_future.result()
                goal_data = goal_future.result()
        except ApiUnreachableError:
            logger.error("refresh_aborted: api unreachable, keeping current state")
            raise
        finally:
            self.loading = False

        categories = [map_category(c) for c in cat_data]
        by_id = {c.id: c for c in categories}
        self.categories = categories
        self.transactions = [map_transaction(t, by_id) for t in txn_data]
        self.goals = [map_goal(g) for g in goal_data]
        logger.info(
            f"refresh_done: transactions={len(self.transactions)} "
            f"categories={len(self.categories)} goals={len(self.goals)}"
        )

    # transactions

    def add_transaction(
        self,
        title: str,
        amount: float,
        category_id: Any,
        txn_date: Optional[date] = None,
    ) -> TransactionRecord:
        category = self._category_map().get(category_id)
        tentative = TransactionRecord(
            id=next(self._tentative_ids),
            title=title,
            amount=float(amount),
            date=txn_date or local_today(),
            category_id=category_id,
            type=category.type if category else TransactionType.expense,
            category=category,
        )
        snapshot = list(self.transactions)
        self.transactions = [tentative, *snapshot]
        try:
            payload = self.client.create_transaction(
                title,
                amount,
                category_id,
                type=tentative.type,
                date=tentative.date,
            )
        except Exception:
            self.transactions = snapshot
            logger.warning(f"add_transaction_rolled_back: tentative_id={tentative.id}")
            raise

        created = map_transaction(payload, self._category_map())
        self.transactions = [
            created if t is tentative else t for t in self.transactions
        ]
        return created

    def edit_transaction(self, transaction_id: Any, **fields: Any) -> TransactionRecord:
        if "category_id" in fields and "type" not in fields:
            category = self._category_map().get(fields["category_id"])
            if category is not None:
                fields["type"] = category.type
        payload = self.client.update_transaction(transaction_id, **fields)
        updated = map_transaction(payload, self._category_map())
        self.transactions = [
            updated if t.id == transaction_id else t for t in self.transactions
        ]
        return updated

    def remove_transaction(self, transaction_id: Any) -> None:
        self.client.delete_transaction(transaction_id)
        self.transactions = [t for t in self.transactions if t.id != transaction_id]

    # categories

    def add_category(
        self,
        name: str,
        type: TransactionType,
        color: Optional[str] = None,
        budget: Optional[float] = None,
    ) -> CategoryRecord:
        payload = self.client.create_category(name, type, color=color, budget=budget)
        created = map_category(payload)
        self.categories = [*self.categories, created]
        return created

    def edit_category(self, category_id: Any, **fields: Any) -> CategoryRecord:
        payload = self.client.update_category(category_id, **fields)
        updated = map_category(payload)
        self.categories = [
            updated if c.id == category_id else c for c in self.categories
        ]
        for txn in self.transactions:
            if txn.category_id == category_id:
                txn.category = updated
                txn.type = updated.type
        return updated

    def remove_category(self, category_id: Any) -> None:
        self.client.delete_category(category_id)
        self.categories = [c for c in self.categories if c.id != category_id]
        # the server deletes the category's transactions with it
        self.transactions = [
            t for t in self.transactions if t.category_id != category_id
        ]

    # goals

    def add_goal(
        self,
        name: str,
        target_amount: float,
        current_amount: float = 0,
        deadline: Optional[date] = None,
        color: Optional[str] = None,
    ) -> GoalRecord:
        analytics.check_goal_allocation(
            self.goals,
            self.summary.total_balance,
            current_amount,
            target_amount,
        )
        payload = self.client.create_goal(
            name,
            target_amount,
            current_amount=current_amount,
            deadline=deadline,
            color=color,
        )
        created = map_goal(payload)
        self.goals = [*self.goals, created]
        return created

    def edit_goal(self, goal_id: Any, **fields: Any) -> GoalRecord:
        existing = next((g for g in self.goals if g.id == goal_id), None)
        if existing is not None:
            analytics.check_goal_allocation(
                self.goals,
                self.summary.total_balance,
                fields.get("current_amount", existing.current_amount),
                fields.get("target_amount", existing.target_amount),
                editing_id=goal_id,
            )
        payload = self.client.update_goal(goal_id, **fields)
        updated = map_goal(payload)
        self.goals = [updated if g.id == goal_id else g for g in self.goals]
        return updated

    def remove_goal(self, goal_id: Any) -> None:
        self.client.delete_goal(goal_id)
        self.goals = [g for g in self.goals if g.id != goal_id]

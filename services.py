from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.orm import Session

from models import (
    DEFAULT_CATEGORY_COLOR,
    DEFAULT_GOAL_COLOR,
    Category,
    SavingsGoal,
    Transaction,
    TransactionType,
)
from periods import local_today
from repositories import CategoryRepository, GoalRepository, TransactionRepository
from schemas import (
    CategoryIn,
    CategoryUpdate,
    GoalIn,
    GoalUpdate,
    TransactionIn,
    TransactionUpdate,
)


logger = logging.getLogger(__name__)


class ApiError(ValueError):
    status_code = 500

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class DomainValidationError(ApiError):
    status_code = 400


class NotFoundError(ApiError):
    status_code = 404


class ConflictError(ApiError):
    status_code = 409


class CategoryService:
    def __init__(self, session: Session) -> None:
        self.session = session
        self.categories = CategoryRepository(session)

    def list_all(self) -> list[Category]:
        return self.categories.find_all()

    def get(self, category_id: int) -> Category:
        category = self.categories.find_by_id(category_id)
        if not category:
            raise NotFoundError("Category not found")
        return category

    def create(self, data: CategoryIn) -> Category:
        if self.categories.find_by_name(data.name):
            raise ConflictError(
                "Category with this name already exists", {"name": data.name}
            )
        if data.budget is not None and data.type != TransactionType.expense:
            raise DomainValidationError("Budget is only allowed for expense categories")
        category = self.categories.create(
            name=data.name,
            type=data.type,
            color=data.color or DEFAULT_CATEGORY_COLOR,
            budget=data.budget,
        )
        logger.info(f"category_created: id={category.id} type={category.type.value}")
        return category

    def update(self, category_id: int, data: CategoryUpdate) -> Category:
        category = self.get(category_id)
        provided = data.model_fields_set
        values: dict[str, Any] = {}

        if data.name is not None:
            if self.categories.find_by_name(data.name, exclude_id=category.id):
                raise ConflictError(
                    "Category with this name already exists", {"name": data.name}
                )
            values["name"] = data.name
        if data.color is not None:
            values["color"] = data.color

        new_type = data.type or category.type
        if "budget" in provided:
            values["budget"] = data.budget
        budget = values.get("budget", category.budget)
        if new_type == TransactionType.income:
            if "budget" in provided and data.budget is not None:
                raise DomainValidationError(
                    "Budget is only allowed for expense categories"
                )
            values["budget"] = None
            budget = None

        if new_type != category.type:
            count = self.categories.retype_transactions(category.id, new_type)
            values["type"] = new_type
            logger.info(
                f"category_retyped: id={category.id} type={new_type.value} "
                f"transactions={count}"
            )
        category = self.categories.update(category, **values)
        logger.info(f"category_updated: id={category.id} budget={budget}")
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        count = len(category.transactions)
        self.categories.delete(category)
        logger.info(
            f"category_deleted: id={category_id} cascaded_transactions={count}"
        )


class TransactionService:
    def __init__(self, session: Session) -> None:
        self.session = session
        self.transactions = TransactionRepository(session)
        self.categories = CategoryRepository(session)

    def list_all(self) -> list[Transaction]:
        return self.transactions.find_all()

    def get(self, transaction_id: int) -> Transaction:
        txn = self.transactions.find_by_id(transaction_id)
        if not txn:
            raise NotFoundError("Transaction not found")
        return txn

    @staticmethod
    def _check_amount(amount: Decimal) -> None:
        if amount <= 0:
            raise DomainValidationError("Amount must be greater than zero")

    def _resolve_category(self, category_id: int) -> Category:
        category = self.categories.find_by_id(category_id)
        if not category:
            raise DomainValidationError(
                "Category not found", {"categoryId": category_id}
            )
        return category

    @staticmethod
    def _check_type(txn_type: TransactionType, category: Category) -> None:
        if txn_type != category.type:
            raise DomainValidationError(
                "Transaction type must match category type",
                {"type": txn_type.value, "categoryType": category.type.value},
            )

    def create(self, data: TransactionIn) -> Transaction:
        self._check_amount(data.amount)
        category = self._resolve_category(data.category_id)
        txn_type = data.type or category.type
        self._check_type(txn_type, category)
        txn = self.transactions.create(
            title=data.title,
            type=txn_type,
            amount=data.amount,
            category_id=category.id,
            date=data.date or local_today(),
        )
        logger.info(
            f"transaction_created: id={txn.id} category_id={category.id} "
            f"type={txn_type.value}"
        )
        return txn

    def update(self, transaction_id: int, data: TransactionUpdate) -> Transaction:
        txn = self.get(transaction_id)
        values: dict[str, Any] = {}
        if data.amount is not None:
            self._check_amount(data.amount)
            values["amount"] = data.amount

        category_id = data.category_id or txn.category_id
        category = self._resolve_category(category_id)
        txn_type = data.type or txn.type
        self._check_type(txn_type, category)

        values["category_id"] = category.id
        values["type"] = txn_type
        if data.title is not None:
            values["title"] = data.title
        if data.date is not None:
            values["date"] = data.date
        txn = self.transactions.update(txn, **values)
        logger.info(f"transaction_updated: id={txn.id}")
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.transactions.delete(txn)
        logger.info(f"transaction_deleted: id={transaction_id}")


class GoalService:
    def __init__(self, session: Session) -> None:
        self.session = session
        self.goals = GoalRepository(session)

    def list_all(self) -> list[SavingsGoal]:
        return self.goals.find_all()

    def get(self, goal_id: int) -> SavingsGoal:
        goal = self.goals.find_by_id(goal_id)
        if not goal:
            raise NotFoundError("Goal not found")
        return goal

    @staticmethod
    def _check_amounts(
        target_amount: Optional[Decimal], current_amount: Optional[Decimal]
    ) -> None:
        if target_amount is not None and target_amount <= 0:
            raise DomainValidationError("Target amount must be greater than 0")
        if current_amount is not None and current_amount < 0:
            raise DomainValidationError("Current amount cannot be negative")

    def create(self, data: GoalIn) -> SavingsGoal:
        if not data.name or not data.name.strip():
            raise DomainValidationError("Goal name is required")
        self._check_amounts(data.target_amount, data.current_amount)
        if data.current_amount > data.target_amount:
            raise DomainValidationError("Current amount cannot exceed target amount")
        goal = self.goals.create(
            name=data.name.strip(),
            target_amount=data.target_amount,
            current_amount=data.current_amount,
            deadline=data.deadline,
            color=data.color or DEFAULT_GOAL_COLOR,
        )
        logger.info(f"goal_created: id={goal.id}")
        return goal

    def update(self, goal_id: int, data: GoalUpdate) -> SavingsGoal:
        goal = self.get(goal_id)
        provided = data.model_fields_set

        if data.name is not None and not data.name.strip():
            raise DomainValidationError("Goal name cannot be empty")
        self._check_amounts(data.target_amount, data.current_amount)

        target_amount = (
            data.target_amount
            if data.target_amount is not None
            else goal.target_amount
        )
        current_amount = (
            data.current_amount
            if data.current_amount is not None
            else goal.current_amount
        )
        if current_amount > target_amount:
            raise DomainValidationError("Current amount cannot exceed target amount")

        values: dict[str, Any] = {
            "target_amount": target_amount,
            "current_amount": current_amount,
        }
        if data.name:
            values["name"] = data.name.strip()
        if "deadline" in provided:
            values["deadline"] = data.deadline
        if data.color:
            values["color"] = data.color
        goal = self.goals.update(goal, **values)
        logger.info(f"goal_updated: id={goal.id}")
        return goal

    def delete(self, goal_id: int) -> None:
        goal = self.get(goal_id)
        self.goals.delete(goal)
        logger.info(f"goal_deleted: id={goal_id}")

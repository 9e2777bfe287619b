from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from models import Category, SavingsGoal, Transaction, TransactionType


class _Repository:
    model: type

    def __init__(self, session: Session) -> None:
        self.session = session

    def find_by_id(self, entity_id: int):
        return self.session.get(self.model, entity_id)

    def create(self, **values: Any):
        entity = self.model(**values)
        self.session.add(entity)
        self.session.commit()
        self.session.refresh(entity)
        return entity

    def update(self, entity, **values: Any):
        for key, value in values.items():
            setattr(entity, key, value)
        self.session.commit()
        self.session.refresh(entity)
        return entity

    def delete(self, entity) -> None:
        self.session.delete(entity)
        self.session.commit()


class CategoryRepository(_Repository):
    model = Category

    def find_all(self) -> list[Category]:
        stmt = select(Category).order_by(Category.name, Category.id)
        return list(self.session.scalars(stmt).all())

    def find_by_name(
        self, name: str, *, exclude_id: Optional[int] = None
    ) -> Optional[Category]:
        stmt = select(Category).where(
            func.lower(Category.name) == name.strip().lower()
        )
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        return self.session.scalars(stmt).first()

    def retype_transactions(self, category_id: int, txn_type: TransactionType) -> int:
        result = self.session.execute(
            update(Transaction)
            .where(Transaction.category_id == category_id)
            .values(type=txn_type)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0


class TransactionRepository(_Repository):
    model = Transaction

    def find_all(self) -> list[Transaction]:
        stmt = select(Transaction).order_by(Transaction.date.desc(), Transaction.id.desc())
        return list(self.session.scalars(stmt).all())


class GoalRepository(_Repository):
    model = SavingsGoal

    def find_all(self) -> list[SavingsGoal]:
        stmt = select(SavingsGoal).order_by(
            SavingsGoal.created_at.desc(), SavingsGoal.id.desc()
        )
        return list(self.session.scalars(stmt).all())

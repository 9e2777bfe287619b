"""HTTP client for the finance API.

One method per REST operation, returning the JSON payloads the server sends.
``map_category``, ``map_transaction`` and ``map_goal`` turn those payloads into
the records the ``store`` keeps, applying the documented defaults for fields
the server leaves out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Optional

import httpx
from pydantic.alias_generators import to_camel

from config import get_settings
from models import DEFAULT_CATEGORY_COLOR, DEFAULT_GOAL_COLOR, TransactionType
from periods import local_today


logger = logging.getLogger(__name__)


class ApiClientError(Exception):
    pass


class ApiUnreachableError(ApiClientError):
    """The API could not be reached at all (connection refused, DNS, timeout)."""


class ApiRequestError(ApiClientError):
    def __init__(self, status_code: int, message: str, body: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.body = body


@dataclass
class CategoryRecord:
    id: Any
    name: str
    type: TransactionType
    color: str
    budget: Optional[float] = None


@dataclass
class TransactionRecord:
    id: Any
    title: str
    amount: float
    date: date
    category_id: Any
    type: TransactionType
    category: Optional[CategoryRecord] = None


@dataclass
class GoalRecord:
    id: Any
    name: str
    target_amount: float
    current_amount: float
    color: str
    deadline: Optional[date] = None


def _parse_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    if not value:
        return local_today()
    return date.fromisoformat(str(value)[:10])


def map_category(payload: dict[str, Any]) -> CategoryRecord:
    budget = payload.get("budget")
    return CategoryRecord(
        id=payload["id"],
        name=payload["name"],
        type=TransactionType(payload["type"]),
        color=payload.get("color") or DEFAULT_CATEGORY_COLOR,
        budget=float(budget) if budget is not None else None,
    )


def map_transaction(
    payload: dict[str, Any], categories: dict[Any, CategoryRecord]
) -> TransactionRecord:
    category = categories.get(payload.get("categoryId"))
    if category is not None:
        txn_type = category.type
    elif payload.get("type"):
        txn_type = TransactionType(payload["type"])
    else:
        txn_type = TransactionType.expense
    return TransactionRecord(
        id=payload["id"],
        title=payload.get("title") or "",
        amount=float(payload["amount"]),
        date=_parse_date(payload.get("date")),
        category_id=payload.get("categoryId"),
        type=txn_type,
        category=category,
    )


def map_goal(payload: dict[str, Any]) -> GoalRecord:
    deadline = payload.get("deadline")
    return GoalRecord(
        id=payload["id"],
        name=payload["name"],
        target_amount=float(payload["targetAmount"]),
        current_amount=float(payload.get("currentAmount") or 0),
        color=payload.get("color") or DEFAULT_GOAL_COLOR,
        deadline=_parse_date(deadline) if deadline else None,
    )


def _encode(fields: dict[str, Any]) -> dict[str, Any]:
    body: dict[str, Any] = {}
    for key, value in fields.items():
        if isinstance(value, date):
            value = value.isoformat()
        elif isinstance(value, Decimal):
            value = float(value)
        elif isinstance(value, TransactionType):
            value = value.value
        body[to_camel(key)] = value
    return body


class FinanceApiClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http: Optional[httpx.Client] = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.api_url).rstrip("/")
        self._http = http or httpx.Client(
            timeout=timeout if timeout is not None else settings.api_timeout_secs,
            headers={"Content-Type": "application/json"},
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "FinanceApiClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, method: str, path: str, payload: Optional[dict] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self._http.request(method, url, json=payload)
        except httpx.TransportError as exc:
            logger.warning(f"api_unreachable: method={method} url={url} error={exc}")
            raise ApiUnreachableError(f"Could not reach the API at {self.base_url}") from exc

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = None
            message = (
                body.get("message")
                if isinstance(body, dict) and body.get("message")
                else response.text or response.reason_phrase
            )
            raise ApiRequestError(response.status_code, message, body)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # categories

    def list_categories(self) -> list[dict[str, Any]]:
        return self._request("GET", "/categories")

    def get_category(self, category_id: int) -> dict[str, Any]:
        return self._request("GET", f"/categories/{category_id}")

    def create_category(
        self,
        name: str,
        type: TransactionType,
        color: Optional[str] = None,
        budget: Optional[float] = None,
    ) -> dict[str, Any]:
        fields: dict[str, Any] = {"name": name, "type": type}
        if color is not None:
            fields["color"] = color
        if budget is not None:
            fields["budget"] = budget
        return self._request("POST", "/categories", _encode(fields))

    def update_category(self, category_id: int, **fields: Any) -> dict[str, Any]:
        return self._request("PUT", f"/categories/{category_id}", _encode(fields))

    def delete_category(self, category_id: int) -> None:
        self._request("DELETE", f"/categories/{category_id}")

    # transactions

    def list_transactions(self) -> list[dict[str, Any]]:
        return self._request("GET", "/transactions")

    def get_transaction(self, transaction_id: int) -> dict[str, Any]:
        return self._request("GET", f"/transactions/{transaction_id}")

    def create_transaction(
        self,
        title: str,
        amount: float,
        category_id: int,
        type: Optional[TransactionType] = None,
        date: Optional[date] = None,
    ) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "title": title,
            "amount": amount,
            "category_id": category_id,
        }
        if type is not None:
            fields["type"] = type
        if date is not None:
            fields["date"] = date
        return self._request("POST", "/transactions", _encode(fields))

    def update_transaction(self, transaction_id: int, **fields: Any) -> dict[str, Any]:
        return self._request("PUT", f"/transactions/{transaction_id}", _encode(fields))

    def delete_transaction(self, transaction_id: int) -> None:
        self._request("DELETE", f"/transactions/{transaction_id}")

    # goals

    def list_goals(self) -> list[dict[str, Any]]:
        return self._request("GET", "/goals")

    def get_goal(self, goal_id: int) -> dict[str, Any]:
        return self._request("GET", f"/goals/{goal_id}")

    def create_goal(
        self,
        name: str,
        target_amount: float,
        current_amount: float = 0,
        deadline: Optional[date] = None,
        color: Optional[str] = None,
    ) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "name": name,
            "target_amount": target_amount,
            "current_amount": current_amount,
        }
        if deadline is not None:
            fields["deadline"] = deadline
        if color is not None:
            fields["color"] = color
        return self._request("POST", "/goals", _encode(fields))

    def update_goal(self, goal_id: int, **fields: Any) -> dict[str, Any]:
        return self._request("PUT", f"/goals/{goal_id}", _encode(fields))

    def delete_goal(self, goal_id: int) -> None:
        self._request("DELETE", f"/goals/{goal_id}")

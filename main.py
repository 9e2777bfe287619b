import logging
from dataclasses import asdict
from datetime import date
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

import analytics
from config import get_settings
from csrf import generate_csrf_token, validate_csrf_token
from csv_utils import export_transactions, parse_amount
from database import SessionLocal, init_db
from models import TransactionType
from periods import local_today, resolve_period
from schemas import (
    CategoryIn,
    CategoryOut,
    CategoryUpdate,
    DashboardOut,
    FlowOut,
    GoalIn,
    GoalOut,
    GoalUpdate,
    SummaryOut,
    TransactionIn,
    TransactionOut,
    TransactionUpdate,
)
from services import (
    ApiError,
    CategoryService,
    ConflictError,
    DomainValidationError,
    GoalService,
    TransactionService,
)


settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Finance Tracker")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)
templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))


def format_currency(value) -> str:
    return f"{float(value or 0):,.2f}"


templates.env.filters["currency"] = format_currency
templates.env.globals["csrf_token"] = generate_csrf_token
templates.env.globals["TransactionType"] = TransactionType


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@app.on_event("startup")
def startup_event():
    init_db()
    logger.info(f"startup: database={settings.database_url.split('://')[0]}")


def _is_api(request: Request) -> bool:
    return request.url.path.startswith("/api")


@app.exception_handler(ApiError)
def api_error_handler(request: Request, exc: ApiError):
    if exc.status_code >= 500:
        logger.error(f"api_error: path={request.url.path} message={exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "details": exc.details},
    )


@app.exception_handler(RequestValidationError)
def validation_error_handler(request: Request, exc: RequestValidationError):
    issues = [
        {
            "path": [part for part in err.get("loc", ()) if part != "body"],
            "message": err.get("msg"),
            "code": err.get("type"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400, content={"message": "Validation error", "issues": issues}
    )


@app.exception_handler(IntegrityError)
def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning(f"integrity_error: path={request.url.path} error={exc.orig}")
    return JSONResponse(
        status_code=409,
        content={"message": "Conflict with existing data", "details": None},
    )


@app.exception_handler(StarletteHTTPException)
def http_error_handler(request: Request, exc: StarletteHTTPException):
    if _is_api(request) or exc.status_code != 404:
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": str(exc.detail), "details": None},
        )
    return render(request, "404.html", {}, status_code=404)


@app.exception_handler(Exception)
def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"unhandled_error: path={request.url.path}")
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


def render(
    request: Request, template: str, context: dict[str, object], status_code: int = 200
) -> HTMLResponse:
    ctx = {"request": request}
    ctx.update(context)
    return templates.TemplateResponse(template, ctx, status_code=status_code)


def filters_from_request(request: Request) -> dict[str, object]:
    params = request.query_params
    txn_type = None
    if params.get("type"):
        try:
            txn_type = TransactionType(params["type"].upper())
        except ValueError:
            txn_type = None
    category_id = None
    if params.get("category"):
        try:
            category_id = int(params["category"])
        except ValueError:
            category_id = None
    sort_by = params.get("sort", "date")
    order = params.get("order", "desc")
    return {
        "category_id": category_id,
        "txn_type": txn_type,
        "query": params.get("q") or None,
        "sort_by": sort_by if sort_by in ("date", "amount") else "date",
        "order": order if order in ("asc", "desc") else "desc",
    }


def _flow_period(request: Request):
    try:
        return resolve_period(request.query_params.get("period"))
    except ValueError as exc:
        raise DomainValidationError(str(exc)) from exc


# --- categories -----------------------------------------------------------


@app.get("/api/categories", response_model=list[CategoryOut])
def list_categories(db: Session = Depends(get_db)):
    return CategoryService(db).list_all()


@app.post("/api/categories", response_model=CategoryOut, status_code=201)
def create_category(data: CategoryIn, db: Session = Depends(get_db)):
    return CategoryService(db).create(data)


@app.get("/api/categories/{category_id}", response_model=CategoryOut)
def get_category(category_id: int, db: Session = Depends(get_db)):
    return CategoryService(db).get(category_id)


@app.put("/api/categories/{category_id}", response_model=CategoryOut)
def update_category(category_id: int, data: CategoryUpdate, db: Session = Depends(get_db)):
    return CategoryService(db).update(category_id, data)


@app.delete("/api/categories/{category_id}", status_code=204)
def delete_category(category_id: int, db: Session = Depends(get_db)):
    CategoryService(db).delete(category_id)
    return Response(status_code=204)


# --- transactions ---------------------------------------------------------


@app.get("/api/transactions", response_model=list[TransactionOut])
def list_transactions(db: Session = Depends(get_db)):
    return TransactionService(db).list_all()


@app.get("/api/transactions/export.csv")
def export_transactions_endpoint(request: Request, db: Session = Depends(get_db)):
    filters = filters_from_request(request)
    items = analytics.filter_transactions(TransactionService(db).list_all(), **filters)
    names = {c.id: c.name for c in CategoryService(db).list_all()}
    content = export_transactions(items, names)
    filename = f"transactions-{local_today().isoformat()}.csv"
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/api/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(data: TransactionIn, db: Session = Depends(get_db)):
    return TransactionService(db).create(data)


@app.get("/api/transactions/{transaction_id}", response_model=TransactionOut)
def get_transaction(transaction_id: int, db: Session = Depends(get_db)):
    return TransactionService(db).get(transaction_id)


@app.put("/api/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int, data: TransactionUpdate, db: Session = Depends(get_db)
):
    return TransactionService(db).update(transaction_id, data)


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(transaction_id: int, db: Session = Depends(get_db)):
    TransactionService(db).delete(transaction_id)
    return Response(status_code=204)


# --- goals ----------------------------------------------------------------


@app.get("/api/goals", response_model=list[GoalOut])
def list_goals(db: Session = Depends(get_db)):
    return GoalService(db).list_all()


@app.post("/api/goals", response_model=GoalOut, status_code=201)
def create_goal(data: GoalIn, db: Session = Depends(get_db)):
    return GoalService(db).create(data)


@app.get("/api/goals/{goal_id}", response_model=GoalOut)
def get_goal(goal_id: int, db: Session = Depends(get_db)):
    return GoalService(db).get(goal_id)


@app.put("/api/goals/{goal_id}", response_model=GoalOut)
def update_goal(goal_id: int, data: GoalUpdate, db: Session = Depends(get_db)):
    return GoalService(db).update(goal_id, data)


@app.delete("/api/goals/{goal_id}", status_code=204)
def delete_goal(goal_id: int, db: Session = Depends(get_db)):
    GoalService(db).delete(goal_id)
    return Response(status_code=204)


# --- views ----------------------------------------------------------------


def _dashboard_data(db: Session, today: date) -> dict[str, object]:
    categories = CategoryService(db).list_all()
    transactions = TransactionService(db).list_all()
    return {
        "summary": analytics.summarize(transactions),
        "expense_by_category": analytics.expense_by_category(categories, transactions),
        "budget_status": analytics.budget_status(categories, transactions, today),
        "monthly": analytics.monthly_evolution(transactions, today),
    }


@app.get("/api/summary", response_model=SummaryOut)
def api_summary(db: Session = Depends(get_db)):
    return asdict(analytics.summarize(TransactionService(db).list_all()))


@app.get("/api/dashboard", response_model=DashboardOut)
def api_dashboard(db: Session = Depends(get_db)):
    data = _dashboard_data(db, local_today())
    return {
        "summary": asdict(data["summary"]),
        "expense_by_category": [asdict(s) for s in data["expense_by_category"]],
        "budget_status": [asdict(b) for b in data["budget_status"]],
        "monthly": [asdict(m) for m in data["monthly"]],
    }


@app.get("/api/flow", response_model=FlowOut)
def api_flow(request: Request, db: Session = Depends(get_db)):
    period = _flow_period(request)
    graph = analytics.build_flow(
        CategoryService(db).list_all(), TransactionService(db).list_all(), period
    )
    return asdict(graph)


# --- pages ----------------------------------------------------------------


def _check_form_token(form) -> None:
    if not validate_csrf_token(form.get("csrf_token", "")):
        raise DomainValidationError("Invalid CSRF token")


def _form_error(exc: Exception) -> tuple[str, int]:
    if isinstance(exc, ApiError):
        return exc.message, exc.status_code
    if isinstance(exc, ValidationError):
        messages = [err["msg"].removeprefix("Value error, ") for err in exc.errors()]
        return "; ".join(messages), 400
    return str(exc), 400


def _optional_date(raw: str) -> Optional[date]:
    return date.fromisoformat(raw) if raw else None


def _optional_amount(raw: str):
    return parse_amount(raw) if raw.strip() else None


@app.get("/", response_class=HTMLResponse)
def dashboard(request: Request, db: Session = Depends(get_db)):
    today = local_today()
    data = _dashboard_data(db, today)
    return render(request, "dashboard.html", {"today": today, **data})


def _transactions_page(
    request: Request, db: Session, error: Optional[str] = None, status_code: int = 200
) -> HTMLResponse:
    filters = filters_from_request(request)
    categories = CategoryService(db).list_all()
    items = analytics.filter_transactions(TransactionService(db).list_all(), **filters)
    return render(
        request,
        "transactions.html",
        {
            "transactions": items,
            "categories": categories,
            "category_names": {c.id: c.name for c in categories},
            "filters": filters,
            "export_query": request.url.query,
            "today": local_today(),
            "error": error,
        },
        status_code=status_code,
    )


def _transaction_fields(form, db: Session) -> dict[str, object]:
    category_id = int(form.get("category_id") or 0)
    categories = {c.id: c for c in CategoryService(db).list_all()}
    category = categories.get(category_id)
    return {
        "title": form.get("title", ""),
        "amount": parse_amount(form.get("amount", "")),
        "category_id": category_id,
        # the form picks a category; its type follows
        "type": category.type if category else None,
        "date": _optional_date(form.get("date") or ""),
    }


@app.get("/transactions", response_class=HTMLResponse)
def transactions_page(request: Request, db: Session = Depends(get_db)):
    return _transactions_page(request, db)


@app.post("/transactions")
async def create_transaction_form(request: Request, db: Session = Depends(get_db)):
    form = await request.form()
    try:
        _check_form_token(form)
        TransactionService(db).create(TransactionIn(**_transaction_fields(form, db)))
    except (ValueError, ApiError) as exc:
        message, status_code = _form_error(exc)
        return _transactions_page(request, db, error=message, status_code=status_code)
    return RedirectResponse(url="/transactions", status_code=303)


@app.post("/transactions/{transaction_id}")
async def update_transaction_form(
    transaction_id: int, request: Request, db: Session = Depends(get_db)
):
    form = await request.form()
    try:
        _check_form_token(form)
        data = TransactionUpdate(**_transaction_fields(form, db))
        TransactionService(db).update(transaction_id, data)
    except (ValueError, ApiError) as exc:
        message, status_code = _form_error(exc)
        return _transactions_page(request, db, error=message, status_code=status_code)
    return RedirectResponse(url="/transactions", status_code=303)


@app.post("/transactions/{transaction_id}/delete")
async def delete_transaction_form(
    transaction_id: int, request: Request, db: Session = Depends(get_db)
):
    form = await request.form()
    try:
        _check_form_token(form)
        TransactionService(db).delete(transaction_id)
    except ApiError as exc:
        return _transactions_page(
            request, db, error=exc.message, status_code=exc.status_code
        )
    return RedirectResponse(url="/transactions", status_code=303)


def _categories_page(
    request: Request, db: Session, error: Optional[str] = None, status_code: int = 200
) -> HTMLResponse:
    return render(
        request,
        "categories.html",
        {"categories": CategoryService(db).list_all(), "error": error},
        status_code=status_code,
    )


def _duplicate_category_page(request: Request, db: Session) -> HTMLResponse:
    return _categories_page(
        request,
        db,
        error="A category with this name already exists",
        status_code=409,
    )


def _category_fields(form) -> dict[str, object]:
    return {
        "name": form.get("name", ""),
        "type": TransactionType(form.get("type", "")),
        "color": form.get("color") or None,
        "budget": _optional_amount(form.get("budget") or ""),
    }


@app.get("/categories", response_class=HTMLResponse)
def categories_page(request: Request, db: Session = Depends(get_db)):
    return _categories_page(request, db)


@app.post("/categories")
async def create_category_form(request: Request, db: Session = Depends(get_db)):
    form = await request.form()
    try:
        _check_form_token(form)
        CategoryService(db).create(CategoryIn(**_category_fields(form)))
    except ConflictError:
        return _duplicate_category_page(request, db)
    except IntegrityError:
        # a concurrent insert won the unique name
        db.rollback()
        return _duplicate_category_page(request, db)
    except (ValueError, ApiError) as exc:
        message, status_code = _form_error(exc)
        return _categories_page(request, db, error=message, status_code=status_code)
    return RedirectResponse(url="/categories", status_code=303)


@app.post("/categories/{category_id}")
async def update_category_form(
    category_id: int, request: Request, db: Session = Depends(get_db)
):
    form = await request.form()
    try:
        _check_form_token(form)
        # a blank budget clears it
        CategoryService(db).update(category_id, CategoryUpdate(**_category_fields(form)))
    except ConflictError:
        return _duplicate_category_page(request, db)
    except IntegrityError:
        db.rollback()
        return _duplicate_category_page(request, db)
    except (ValueError, ApiError) as exc:
        message, status_code = _form_error(exc)
        return _categories_page(request, db, error=message, status_code=status_code)
    return RedirectResponse(url="/categories", status_code=303)


@app.post("/categories/{category_id}/delete")
async def delete_category_form(
    category_id: int, request: Request, db: Session = Depends(get_db)
):
    form = await request.form()
    try:
        _check_form_token(form)
        CategoryService(db).delete(category_id)
    except ApiError as exc:
        return _categories_page(
            request, db, error=exc.message, status_code=exc.status_code
        )
    return RedirectResponse(url="/categories", status_code=303)


def _goals_page(
    request: Request, db: Session, error: Optional[str] = None, status_code: int = 200
) -> HTMLResponse:
    goals = GoalService(db).list_all()
    transactions = TransactionService(db).list_all()
    summary = analytics.summarize(transactions)
    average = analytics.average_monthly_balance(transactions, summary.total_balance)
    return render(
        request,
        "goals.html",
        {
            "goals": goals,
            "progress": {g.id: analytics.goal_progress(g, average) for g in goals},
            "balance": summary.total_balance,
            "allocated": analytics.total_allocated(goals),
            "available": analytics.available_to_allocate(summary.total_balance, goals),
            "average_monthly_balance": average,
            "error": error,
        },
        status_code=status_code,
    )


def _goal_fields(form) -> dict[str, object]:
    return {
        "name": form.get("name", ""),
        "target_amount": parse_amount(form.get("target_amount", "")),
        "current_amount": parse_amount(form.get("current_amount") or "0"),
        "deadline": _optional_date(form.get("deadline") or ""),
        "color": form.get("color") or None,
    }


def _check_allocation(db: Session, data, editing_id: Optional[int] = None) -> None:
    goals = GoalService(db).list_all()
    balance = analytics.summarize(TransactionService(db).list_all()).total_balance
    analytics.check_goal_allocation(
        goals,
        balance,
        data.current_amount,
        data.target_amount,
        editing_id=editing_id,
    )


@app.get("/goals", response_class=HTMLResponse)
def goals_page(request: Request, db: Session = Depends(get_db)):
    return _goals_page(request, db)


@app.post("/goals")
async def create_goal_form(request: Request, db: Session = Depends(get_db)):
    form = await request.form()
    try:
        _check_form_token(form)
        data = GoalIn(**_goal_fields(form))
        _check_allocation(db, data)
        GoalService(db).create(data)
    except (ValueError, ApiError) as exc:
        message, status_code = _form_error(exc)
        return _goals_page(request, db, error=message, status_code=status_code)
    return RedirectResponse(url="/goals", status_code=303)


@app.post("/goals/{goal_id}")
async def update_goal_form(goal_id: int, request: Request, db: Session = Depends(get_db)):
    form = await request.form()
    try:
        _check_form_token(form)
        service = GoalService(db)
        service.get(goal_id)
        # a blank deadline clears it
        data = GoalUpdate(**_goal_fields(form))
        _check_allocation(db, data, editing_id=goal_id)
        service.update(goal_id, data)
    except (ValueError, ApiError) as exc:
        message, status_code = _form_error(exc)
        return _goals_page(request, db, error=message, status_code=status_code)
    return RedirectResponse(url="/goals", status_code=303)


@app.post("/goals/{goal_id}/delete")
async def delete_goal_form(goal_id: int, request: Request, db: Session = Depends(get_db)):
    form = await request.form()
    try:
        _check_form_token(form)
        GoalService(db).delete(goal_id)
    except ApiError as exc:
        return _goals_page(request, db, error=exc.message, status_code=exc.status_code)
    return RedirectResponse(url="/goals", status_code=303)


@app.get("/flow", response_class=HTMLResponse)
def flow_page(request: Request, db: Session = Depends(get_db)):
    period = _flow_period(request)
    graph = analytics.build_flow(
        CategoryService(db).list_all(), TransactionService(db).list_all(), period
    )
    total_in = sum(link.value for link in graph.links if link.target == 0)
    return render(
        request,
        "flow.html",
        {"graph": graph, "period": period, "total_in": total_in},
    )


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=settings.port, reload=False)


if __name__ == "__main__":
    main()

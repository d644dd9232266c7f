"""REST API for SplitLedger.

A thin adapter over LedgerService. Authentication happens upstream; the
caller's user id arrives in the X-User-Id header.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response

from .authorization import Resource, can_perform, require
from .exceptions import (
    AuthorizationError,
    DataIntegrityError,
    NotFoundError,
    ValidationError,
)
from .ledger.service import LedgerService
from .models import (
    Expense,
    ExpenseUpdate,
    Group,
    GroupUpdate,
    NewExpense,
    NewGroup,
    NewSettlement,
    Settlement,
    SettlementSuggestion,
    User,
)
from .storage import LedgerRepository

logger = logging.getLogger(__name__)

router = APIRouter()


def get_service(request: Request) -> LedgerService:
    return request.app.state.service


def get_current_user(
    x_user_id: str | None = Header(default=None),
    service: LedgerService = Depends(get_service),
) -> User:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Unauthorized: Please log in to continue.")

    user = service.repository.get_user(x_user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")
    return user


# ============================================================================
# Health
# ============================================================================


@router.get("/healthcheck")
def healthcheck():
    return {"status": "ok", "timestamp": datetime.now().isoformat()}


# ============================================================================
# Users
# ============================================================================


@router.get("/users", response_model=list[User])
def list_users(
    service: LedgerService = Depends(get_service),
    user: User = Depends(get_current_user),
):
    require(user, "read", Resource("User"))
    return service.repository.list_users()


@router.get("/users/{user_id}", response_model=User)
def get_user(
    user_id: str,
    service: LedgerService = Depends(get_service),
    user: User = Depends(get_current_user),
):
    require(user, "read", Resource("User", owner_id=user_id))
    return service.get_user(user_id)


# ============================================================================
# Groups
# ============================================================================


@router.get("/groups", response_model=list[Group])
def my_groups(
    service: LedgerService = Depends(get_service),
    user: User = Depends(get_current_user),
):
    return service.list_user_groups(user.id)


@router.get("/groups/{group_id}", response_model=Group)
def get_group(
    group_id: str,
    service: LedgerService = Depends(get_service),
    user: User = Depends(get_current_user),
):
    group = service.get_group(group_id)
    require(user, "read", Resource("Group", group=group))
    return group


@router.post("/groups", response_model=Group, status_code=201)
def create_group(
    data: NewGroup,
    service: LedgerService = Depends(get_service),
    user: User = Depends(get_current_user),
):
    require(user, "create", Resource("Group"))
    return service.create_group(data)


@router.put("/groups/{group_id}", response_model=Group)
def update_group(
    group_id: str,
    data: GroupUpdate,
    service: LedgerService = Depends(get_service),
    user: User = Depends(get_current_user),
):
    group = service.get_group(group_id)
    require(user, "update", Resource("Group", group=group))
    return service.update_group(
        group_id, **data.model_dump(exclude_unset=True, exclude_none=True)
    )


@router.get("/users/{user_id}/groups", response_model=list[Group])
def user_groups(
    user_id: str,
    service: LedgerService = Depends(get_service),
    user: User = Depends(get_current_user),
):
    # Only groups the caller may read themselves
    return [
        group
        for group in service.list_user_groups(user_id)
        if can_perform(user, "read", Resource("Group", group=group))
    ]


# ============================================================================
# Expenses
# ============================================================================


@router.get("/groups/{group_id}/expenses", response_model=list[Expense])
def group_expenses(
    group_id: str,
    service: LedgerService = Depends(get_service),
    user: User = Depends(get_current_user),
):
    group = service.get_group(group_id)
    require(user, "read", Resource("Expense", group=group))
    return service.repository.get_group_expenses(group_id)


@router.get("/expenses/{expense_id}", response_model=Expense)
def get_expense(
    expense_id: str,
    service: LedgerService = Depends(get_service),
    user: User = Depends(get_current_user),
):
    expense = service.get_expense(expense_id)
    group = service.get_group(expense.group_id)
    require(user, "read", Resource("Expense", group=group))
    return expense


@router.post("/expenses", response_model=Expense, status_code=201)
def create_expense(
    data: NewExpense,
    service: LedgerService = Depends(get_service),
    user: User = Depends(get_current_user),
):
    group = service.get_group(data.group_id)
    require(user, "create", Resource("Expense", group=group))
    return service.record_expense(data)


@router.put("/expenses/{expense_id}", response_model=Expense)
def update_expense(
    expense_id: str,
    data: ExpenseUpdate,
    service: LedgerService = Depends(get_service),
    user: User = Depends(get_current_user),
):
    expense = service.get_expense(expense_id)
    group = service.get_group(expense.group_id)
    require(user, "update", Resource("Expense", group=group))
    return service.update_expense(
        expense_id, **data.model_dump(exclude_unset=True, exclude_none=True)
    )


@router.delete("/expenses/{expense_id}", status_code=204)
def delete_expense(
    expense_id: str,
    service: LedgerService = Depends(get_service),
    user: User = Depends(get_current_user),
):
    expense = service.get_expense(expense_id)
    group = service.get_group(expense.group_id)
    require(user, "delete", Resource("Expense", group=group))
    service.delete_expense(expense_id)
    return Response(status_code=204)


# ============================================================================
# Settlements and balances
# ============================================================================


@router.get("/groups/{group_id}/settlements", response_model=list[Settlement])
def group_settlements(
    group_id: str,
    service: LedgerService = Depends(get_service),
    user: User = Depends(get_current_user),
):
    group = service.get_group(group_id)
    require(user, "read", Resource("Settlement", group=group))
    return service.repository.get_group_settlements(group_id)


@router.post("/settlements", response_model=Settlement, status_code=201)
def create_settlement(
    data: NewSettlement,
    service: LedgerService = Depends(get_service),
    user: User = Depends(get_current_user),
):
    group = service.get_group(data.group_id)
    require(user, "create", Resource("Settlement", group=group))
    return service.record_settlement(data)


@router.get("/groups/{group_id}/balances")
def group_balances(
    group_id: str,
    service: LedgerService = Depends(get_service),
    user: User = Depends(get_current_user),
) -> dict[str, float]:
    group = service.get_group(group_id)
    require(user, "read", Resource("Group", group=group))
    sheet = service.get_balances(group_id)
    # Values are already quantized to cents; floats only for the JSON wire
    return {user_id: float(balance) for user_id, balance in sheet.items()}


@router.get(
    "/groups/{group_id}/suggestion", response_model=SettlementSuggestion | None
)
def settlement_suggestion(
    group_id: str,
    counterparty: str | None = Query(default=None, alias="with"),
    service: LedgerService = Depends(get_service),
    user: User = Depends(get_current_user),
):
    group = service.get_group(group_id)
    require(user, "read", Resource("Group", group=group))
    return service.suggest_settlement(group_id, user.id, counterparty)


# ============================================================================
# Application
# ============================================================================


def _error_handler(status_code: int):
    def handler(request: Request, exc: Exception) -> JSONResponse:
        if status_code >= 422:
            logger.warning(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=status_code, content={"message": str(exc)})

    return handler


def create_app(repository: LedgerRepository) -> FastAPI:
    """
    Build the API application around a repository.

    Args:
        repository: Storage backend chosen at startup

    Returns:
        The FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        repository.close()

    app = FastAPI(title="SplitLedger", lifespan=lifespan)
    app.state.service = LedgerService(repository)

    app.add_exception_handler(NotFoundError, _error_handler(404))
    app.add_exception_handler(ValidationError, _error_handler(400))
    app.add_exception_handler(AuthorizationError, _error_handler(403))
    app.add_exception_handler(DataIntegrityError, _error_handler(422))

    app.include_router(router, prefix="/api")

    return app

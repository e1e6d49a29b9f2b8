from typing import Optional
from uuid import UUID
from fastapi import Depends, FastAPI, Header, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .errors import (
    ForbiddenError,
    InvalidOperationError,
    LedgerServiceError,
    NotFoundError,
    UnauthenticatedError,
)
from .logger import configure_logging, get_logger
from .models import (
    BulkTransactionRequest,
    BulkTransactionResponse,
    CancelFriendRequest,
    CountResponse,
    CreatePersonRequest,
    FriendRequest,
    FriendRequestList,
    FriendResponseResult,
    MarkReadRequest,
    NewTransaction,
    Notification,
    Person,
    PersonWithTransactions,
    RegisterUserRequest,
    RespondFriendRequest,
    SendFriendRequest,
    Transaction,
    TransactionPatch,
    UpdatePersonRequest,
    UpdateProfileRequest,
    User,
    UserSummary,
)
from .service import LedgerService

settings = get_settings()
configure_logging(settings)
log = get_logger(__name__)

app = FastAPI(
    title=settings.app_name,
    description="Shared-expense ledger with friend-linked, mirrored transactions",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ledger_service = LedgerService(settings=settings)


def get_ledger_service() -> LedgerService:
    return ledger_service


def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    service: LedgerService = Depends(get_ledger_service),
) -> User:
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    try:
        return service.get_profile(UUID(x_user_id))
    except (ValueError, UnauthenticatedError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid user")


def _http_error(e: LedgerServiceError) -> HTTPException:
    if isinstance(e, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(e, ForbiddenError):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(e, UnauthenticatedError):
        code = status.HTTP_401_UNAUTHORIZED
    elif isinstance(e, InvalidOperationError):
        code = status.HTTP_400_BAD_REQUEST
    else:
        log.error("unmapped_service_error", error=str(e))
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=str(e))


@app.get("/health", tags=["System"])
def health_check():
    return {"status": "healthy", "service": "iou-ledger"}


# Users


@app.post("/users", response_model=User, status_code=status.HTTP_201_CREATED, tags=["Users"])
def register_user(request: RegisterUserRequest, service: LedgerService = Depends(get_ledger_service)) -> User:
    try:
        return service.register_user(request.name, request.email)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.get("/users/me", response_model=User, tags=["Users"])
def get_me(user: User = Depends(get_current_user)) -> User:
    return user


@app.put("/users/me", response_model=User, tags=["Users"])
def update_me(
    request: UpdateProfileRequest,
    user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
) -> User:
    try:
        return service.update_profile(user.id, request.name)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.delete("/users/me", tags=["Users"])
def delete_me(
    user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
):
    try:
        service.delete_account(user.id)
    except LedgerServiceError as e:
        raise _http_error(e)
    return {"ok": True}


@app.get("/users/search", response_model=list[UserSummary], tags=["Users"])
def search_users(
    q: str = "",
    user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
) -> list[UserSummary]:
    return service.search_users(user.id, q)


# Friends


@app.post("/friends/request", response_model=FriendRequest, status_code=status.HTTP_201_CREATED, tags=["Friends"])
def send_friend_request(
    request: SendFriendRequest,
    user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
) -> FriendRequest:
    try:
        return service.send_friend_request(user.id, request.email, request.person_id)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.get("/friends/requests", response_model=FriendRequestList, tags=["Friends"])
def list_friend_requests(
    user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
) -> FriendRequestList:
    return service.list_friend_requests(user.id)


@app.post("/friends/respond", response_model=FriendResponseResult, tags=["Friends"])
def respond_friend_request(
    request: RespondFriendRequest,
    user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
) -> FriendResponseResult:
    try:
        return service.respond_friend_request(request.request_id, user.id, request.action)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.post("/friends/cancel", response_model=FriendRequest, tags=["Friends"])
def cancel_friend_request(
    request: CancelFriendRequest,
    user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
) -> FriendRequest:
    try:
        return service.cancel_friend_request(request.request_id, user.id)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.get("/friends", response_model=list[UserSummary], tags=["Friends"])
def list_friends(
    user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
) -> list[UserSummary]:
    return service.list_friends(user.id)


# People


@app.get("/people", response_model=list[Person], tags=["People"])
def list_people(
    user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
) -> list[Person]:
    return service.list_persons(user.id)


@app.get("/people/with-transactions", response_model=list[PersonWithTransactions], tags=["People"])
def list_people_with_transactions(
    user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
) -> list[PersonWithTransactions]:
    return service.list_persons_with_transactions(user.id)


@app.post("/people", response_model=Person, status_code=status.HTTP_201_CREATED, tags=["People"])
def create_person(
    request: CreatePersonRequest,
    user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
) -> Person:
    try:
        return service.create_person(user.id, request)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.put("/people/{person_id}", response_model=Person, tags=["People"])
def update_person(
    person_id: UUID,
    request: UpdatePersonRequest,
    user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
) -> Person:
    try:
        return service.update_person(person_id, user.id, request)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.delete("/people/{person_id}", tags=["People"])
def delete_person(
    person_id: UUID,
    user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
):
    try:
        service.delete_person(person_id, user.id)
    except LedgerServiceError as e:
        raise _http_error(e)
    return {"message": "Person removed"}


@app.post("/people/{person_id}/remind", tags=["People"])
def remind_person(
    person_id: UUID,
    user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
):
    try:
        balance = service.remind_person(person_id, user.id)
    except LedgerServiceError as e:
        raise _http_error(e)
    return {"ok": True, "balance": str(balance)}


# Transactions


@app.get("/transactions/{person_id}", response_model=list[Transaction], tags=["Transactions"])
def list_transactions(
    person_id: UUID,
    user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
) -> list[Transaction]:
    try:
        return service.list_transactions(user.id, person_id)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.post(
    "/transactions/bulk",
    response_model=BulkTransactionResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Transactions"],
)
def create_bulk_transaction(
    request: BulkTransactionRequest,
    user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
) -> BulkTransactionResponse:
    payload = NewTransaction(**request.model_dump(exclude={"person_ids"}))
    try:
        transactions = service.create_bulk_transaction(user.id, request.person_ids, payload)
    except LedgerServiceError as e:
        raise _http_error(e)
    return BulkTransactionResponse(
        message=f"Created {len(transactions)} transactions",
        transactions=transactions,
    )


@app.post(
    "/transactions/{person_id}",
    response_model=Transaction,
    status_code=status.HTTP_201_CREATED,
    tags=["Transactions"],
)
def create_transaction(
    person_id: UUID,
    request: NewTransaction,
    user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
) -> Transaction:
    try:
        return service.create_transaction(user.id, person_id, request)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.put("/transactions/{transaction_id}", response_model=Transaction, tags=["Transactions"])
def update_transaction(
    transaction_id: UUID,
    request: TransactionPatch,
    user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
) -> Transaction:
    try:
        return service.update_transaction(transaction_id, user.id, request)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.delete("/transactions/{transaction_id}", tags=["Transactions"])
def delete_transaction(
    transaction_id: UUID,
    user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
):
    try:
        service.delete_transaction(transaction_id, user.id)
    except LedgerServiceError as e:
        raise _http_error(e)
    return {"message": "Transaction removed"}


# Notifications


@app.get("/notifications", response_model=list[Notification], tags=["Notifications"])
def list_notifications(
    user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
) -> list[Notification]:
    return service.list_notifications(user.id)


@app.post("/notifications/read", response_model=CountResponse, tags=["Notifications"])
def mark_notifications_read(
    request: Optional[MarkReadRequest] = None,
    user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
) -> CountResponse:
    ids = request.ids if request else None
    return CountResponse(count=service.mark_notifications_read(user.id, ids))


@app.delete("/notifications/clear", response_model=CountResponse, tags=["Notifications"])
def clear_notifications(
    user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
) -> CountResponse:
    return CountResponse(count=service.clear_notifications(user.id))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

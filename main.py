import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from config import get_settings
from database import get_db, session_scope
from errors import NotAuthenticated, ServiceError
from permissions import Actor
from schemas import (
    AccountIn,
    AccountOut,
    AccountUpdate,
    BalanceOut,
    BookIn,
    BookOut,
    BookUpdate,
    CategoryIn,
    CategoryOut,
    CategoryUpdate,
    LoginIn,
    MemberIn,
    RoleUpdate,
    TeamIn,
    TeamOut,
    TransactionIn,
    TransactionOut,
    UserIn,
    UserOut,
    UserUpdate,
)
from services import (
    AccountService,
    BookService,
    CategoryService,
    ReportService,
    TeamService,
    TransactionService,
    UserService,
)

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = FastAPI(title="Teambooks")


def get_actor(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> Actor:
    token = None
    if authorization:
        scheme, _, value = authorization.partition(" ")
        if scheme.lower() != "bearer" or not value.strip():
            raise NotAuthenticated("Authentication token required")
        token = value.strip()
    return UserService(db).authenticate(token)


@app.on_event("startup")
def startup_event():
    if not settings.bootstrap_password:
        return
    with session_scope() as session:
        UserService(session).bootstrap_superadmin(
            settings.bootstrap_username, settings.bootstrap_password
        )


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logging.error(f"service_error: path={request.url.path} error={exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logging.exception(f"unhandled_error: path={request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/health")
def health():
    return {"status": "ok"}


# -- auth & users -----------------------------------------------------------


@app.post("/api/auth/login")
def login(payload: LoginIn, db: Session = Depends(get_db)):
    user, token = UserService(db).login(payload.username, payload.password)
    logging.info(f"login: user_id={user.id}")
    return {"token": token, "user": UserOut.model_validate(user)}


@app.get("/api/users/me", response_model=UserOut)
def current_user(db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return UserService(db, actor).get(actor.user_id)


@app.get("/api/users", response_model=list[UserOut])
def list_users(db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return UserService(db, actor).list_all()


@app.get("/api/users/search", response_model=list[UserOut])
def search_users(
    q: str = "",
    limit: Optional[int] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return UserService(db, actor).search(q, limit)


@app.post("/api/users", response_model=UserOut, status_code=201)
def create_user(
    payload: UserIn, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)
):
    return UserService(db, actor).create(payload)


@app.get("/api/users/{user_id}", response_model=UserOut)
def get_user(
    user_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)
):
    return UserService(db, actor).get(user_id)


@app.put("/api/users/{user_id}", response_model=UserOut)
def update_user(
    user_id: int,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return UserService(db, actor).update(user_id, payload)


@app.delete("/api/users/{user_id}", status_code=204)
def delete_user(
    user_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)
):
    UserService(db, actor).delete(user_id)
    return Response(status_code=204)


@app.post("/api/users/{user_id}/enable", response_model=UserOut)
def enable_user(
    user_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)
):
    return UserService(db, actor).enable(user_id)


@app.post("/api/users/{user_id}/disable", response_model=UserOut)
def disable_user(
    user_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)
):
    return UserService(db, actor).disable(user_id)


# -- teams --------------------------------------------------------------------


@app.get("/api/teams")
def my_teams(db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return TeamService(db, actor).list_mine()


@app.get("/api/teams/all")
def all_teams(
    deleted: bool = False,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return TeamService(db, actor).list_all(deleted=deleted)


@app.get("/api/teams/search", response_model=list[TeamOut])
def search_teams(
    q: str = "",
    limit: Optional[int] = None,
    include_deleted: bool = False,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return TeamService(db, actor).search(q, limit, include_deleted)


@app.post("/api/teams", response_model=TeamOut, status_code=201)
def create_team(
    payload: TeamIn, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)
):
    return TeamService(db, actor).create(payload)


@app.get("/api/teams/{team_id}")
def get_team(
    team_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)
):
    return TeamService(db, actor).get(team_id)


@app.put("/api/teams/{team_id}", response_model=TeamOut)
def rename_team(
    team_id: int,
    payload: TeamIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return TeamService(db, actor).rename(team_id, payload)


@app.delete("/api/teams/{team_id}", status_code=204)
def soft_delete_team(
    team_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)
):
    TeamService(db, actor).soft_delete(team_id)
    return Response(status_code=204)


@app.post("/api/teams/{team_id}/restore", response_model=TeamOut)
def restore_team(
    team_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)
):
    return TeamService(db, actor).restore(team_id)


@app.delete("/api/teams/{team_id}/permanent", status_code=204)
def permanently_delete_team(
    team_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)
):
    TeamService(db, actor).permanently_delete(team_id)
    return Response(status_code=204)


@app.get("/api/teams/{team_id}/members")
def team_members(
    team_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)
):
    return TeamService(db, actor).members(team_id)


@app.post("/api/teams/{team_id}/members", status_code=201)
def add_team_member(
    team_id: int,
    payload: MemberIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return TeamService(db, actor).add_member(team_id, payload)


@app.put("/api/teams/{team_id}/members/{user_id}")
def change_member_role(
    team_id: int,
    user_id: int,
    payload: RoleUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return TeamService(db, actor).change_role(team_id, user_id, payload.role)


@app.delete("/api/teams/{team_id}/members/{user_id}", status_code=204)
def remove_team_member(
    team_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    TeamService(db, actor).remove_member(team_id, user_id)
    return Response(status_code=204)


@app.get("/api/teams/{team_id}/books", response_model=list[BookOut])
def team_books(
    team_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)
):
    return TeamService(db, actor).books(team_id)


# -- books --------------------------------------------------------------------


@app.get("/api/books")
def my_books(db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return BookService(db, actor).list_mine()


@app.get("/api/books/all")
def all_books(
    deleted: bool = False,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return BookService(db, actor).list_all(deleted=deleted)


@app.get("/api/books/search", response_model=list[BookOut])
def search_books(
    q: str = "",
    limit: Optional[int] = None,
    include_deleted: bool = False,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return BookService(db, actor).search(q, limit, include_deleted)


@app.post("/api/books", response_model=BookOut, status_code=201)
def create_book(
    payload: BookIn, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)
):
    return BookService(db, actor).create(payload)


@app.get("/api/books/{book_id}", response_model=BookOut)
def get_book(
    book_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)
):
    return BookService(db, actor).get(book_id)


@app.put("/api/books/{book_id}", response_model=BookOut)
def update_book(
    book_id: int,
    payload: BookUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return BookService(db, actor).update(book_id, payload)


@app.delete("/api/books/{book_id}", status_code=204)
def soft_delete_book(
    book_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)
):
    BookService(db, actor).soft_delete(book_id)
    return Response(status_code=204)


@app.post("/api/books/{book_id}/restore", response_model=BookOut)
def restore_book(
    book_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)
):
    return BookService(db, actor).restore(book_id)


@app.delete("/api/books/{book_id}/permanent", status_code=204)
def permanently_delete_book(
    book_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)
):
    BookService(db, actor).permanently_delete(book_id)
    return Response(status_code=204)


@app.get("/api/books/{book_id}/accounts", response_model=list[AccountOut])
def book_accounts(
    book_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)
):
    return BookService(db, actor).accounts(book_id)


@app.get("/api/books/{book_id}/categories", response_model=list[CategoryOut])
def book_categories(
    book_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)
):
    return BookService(db, actor).categories(book_id)


@app.get("/api/books/{book_id}/transactions", response_model=list[TransactionOut])
def book_transactions(
    book_id: int,
    account_id: Optional[int] = None,
    start: Optional[str] = None,
    end: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return BookService(db, actor).transactions(book_id, account_id, start, end)


# -- accounts -----------------------------------------------------------------


@app.post("/api/accounts", response_model=AccountOut, status_code=201)
def create_account(
    payload: AccountIn, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)
):
    return AccountService(db, actor).create(payload)


@app.get("/api/accounts/{account_id}", response_model=AccountOut)
def get_account(
    account_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)
):
    return AccountService(db, actor).get(account_id)


@app.put("/api/accounts/{account_id}", response_model=AccountOut)
def update_account(
    account_id: int,
    payload: AccountUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return AccountService(db, actor).update(account_id, payload)


@app.delete("/api/accounts/{account_id}", status_code=204)
def delete_account(
    account_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)
):
    AccountService(db, actor).delete(account_id)
    return Response(status_code=204)


@app.get("/api/accounts/{account_id}/balance", response_model=BalanceOut)
def account_balance(
    account_id: int,
    up_to: Optional[str] = Query(default=None, alias="upToDate"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    balance = AccountService(db, actor).balance(account_id, up_to)
    return BalanceOut(
        exercised_balance_cents=balance.exercised_cents,
        projected_balance_cents=balance.projected_cents,
    )


@app.get("/api/accounts/{account_id}/monthly")
def account_monthly(
    account_id: int,
    date: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    report = ReportService(db, actor).monthly(account_id, date)
    report["transactions"] = [
        TransactionOut.model_validate(txn) for txn in report["transactions"]
    ]
    return report


# -- categories ---------------------------------------------------------------


@app.post("/api/categories", response_model=CategoryOut, status_code=201)
def create_category(
    payload: CategoryIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return CategoryService(db, actor).create(payload)


@app.get("/api/categories/{category_id}", response_model=CategoryOut)
def get_category(
    category_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)
):
    return CategoryService(db, actor).get(category_id)


@app.put("/api/categories/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: int,
    payload: CategoryUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return CategoryService(db, actor).update(category_id, payload)


@app.delete("/api/categories/{category_id}", status_code=204)
def delete_category(
    category_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)
):
    CategoryService(db, actor).delete(category_id)
    return Response(status_code=204)


# -- transactions -------------------------------------------------------------


@app.post("/api/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(
    payload: TransactionIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return TransactionService(db, actor).create(payload)


@app.get("/api/transactions/{transaction_id}", response_model=TransactionOut)
def get_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return TransactionService(db, actor).get(transaction_id)


@app.put("/api/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int,
    payload: TransactionIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return TransactionService(db, actor).update(transaction_id, payload)


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    TransactionService(db, actor).delete(transaction_id)
    return Response(status_code=204)

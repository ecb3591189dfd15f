from datetime import date, datetime, timezone
from functools import lru_cache
from typing import Annotated, Any, Dict, Literal, Optional

from fastapi import Body, Depends, FastAPI, Query, Request, Response, Security
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyCookie, APIKeyHeader
from pydantic import BaseModel, Field, field_validator

import database
from auth import Principal, authorize
from book import Book
from config import settings
from errors import LibraryError
from library import Library
from lending_record import LendingUpdate


@lru_cache
def get_library() -> Library:
    """The Library bound to the configured database file (overridable in tests)."""
    return Library(db_file=database.DATABASE_FILE)


app = FastAPI(title=settings.app_name, version=settings.app_version)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error rendering ---
@app.exception_handler(LibraryError)
async def library_error_handler(request: Request, exc: LibraryError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part not in ("body", "query"))
        problems.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return JSONResponse(status_code=400, content={"error": "Invalid request: " + "; ".join(problems)})


# --- Security ---
auth_header = APIKeyHeader(name="Authorization", auto_error=False)
auth_cookie = APIKeyCookie(name=settings.auth_cookie_name, auto_error=False)


def presented_token(
    authorization: Optional[str] = Security(auth_header),
    cookie_token: Optional[str] = Security(auth_cookie),
) -> Optional[str]:
    """The token sent as a Bearer header, else the auth cookie."""
    if authorization:
        scheme, _, value = authorization.partition(" ")
        return value.strip() if scheme.lower() == "bearer" else authorization.strip()
    return cookie_token


def get_principal(
    library: Library = Depends(get_library),
    token: Optional[str] = Depends(presented_token),
) -> Principal:
    """Dependency resolving the caller from a Bearer header or the auth cookie."""
    return library.tokens.resolve(token)


# --- Models ---
PositiveId = Annotated[int, Field(strict=True, gt=0)]
StatusValue = Literal["borrowed", "returned", "overdue", "lost"]


class LendingCreateModel(BaseModel):
    user_id: PositiveId
    book_id: PositiveId
    due_date: Optional[date] = Field(default=None, description="YYYY-MM-DD; defaults to 14 days from today")


class LendingCreatedModel(BaseModel):
    message: str
    lending_id: int


class LendingUpdateModel(BaseModel):
    lending_id: PositiveId
    returned_date: Optional[date] = None
    status: Optional[StatusValue] = None

    @field_validator("returned_date", mode="before")
    @classmethod
    def blank_date_is_missing(cls, value):
        # Forms send "" for an untouched date field
        if isinstance(value, str) and not value.strip():
            return None
        return value


class LendingWithBookModel(BaseModel):
    lending_id: int
    user_id: int
    book_id: int
    borrowed_date: str
    due_date: str
    returned_date: Optional[str] = None
    status: StatusValue
    lending_created_at: str
    lending_updated_at: str
    book_title: Optional[str] = None
    book_author: Optional[str] = None
    book_isbn: Optional[str] = None
    book_publication_year: Optional[int] = None
    book_genre: Optional[str] = None
    book_stock: Optional[int] = None
    book_is_available: Optional[bool] = None


class OverdueSweepModel(BaseModel):
    as_of: Optional[date] = None


class BookModel(BaseModel):
    id: int
    title: str
    author: str
    description: Optional[str] = None
    isbn: Optional[str] = None
    publication_year: Optional[int] = None
    genre: Optional[str] = None
    stock: int
    is_available: bool


class BookCreateModel(BaseModel):
    title: str = Field(min_length=1)
    author: str = Field(min_length=1)
    description: Optional[str] = None
    isbn: Optional[str] = None
    publication_year: Optional[int] = None
    genre: Optional[str] = None
    stock: int = Field(default=0, ge=0)


class StockModel(BaseModel):
    stock: int = Field(ge=0)


class PrincipalModel(BaseModel):
    id: int
    privilege_level: int


# --- Health ---
@app.get("/health")
def health(library: Library = Depends(get_library)):
    """Lightweight health check with a quick database round trip."""
    db_ok = True
    try:
        conn = database.get_db_connection(library.db_file)
        conn.execute("SELECT 1")
        conn.close()
    except Exception:
        db_ok = False
    return {
        "status": "healthy" if db_ok else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "db": db_ok,
    }


# --- Auth ---
@app.get("/auth/me", response_model=PrincipalModel)
def who_am_i(principal: Principal = Depends(get_principal)):
    return PrincipalModel(id=principal.id, privilege_level=principal.privilege_level)


@app.post("/auth/logout")
def logout(
    response: Response,
    token: Optional[str] = Depends(presented_token),
    library: Library = Depends(get_library),
) -> Dict[str, Any]:
    """Revoke the presented token, if any, and clear the auth cookie."""
    if token:
        library.tokens.revoke(token)
    response.delete_cookie(settings.auth_cookie_name, path="/")
    return {"message": "Logged out successfully."}


# --- Lendings ---
@app.post("/lendings", response_model=LendingCreatedModel, status_code=201)
def create_lending(
    payload: LendingCreateModel,
    principal: Principal = Depends(get_principal),
    library: Library = Depends(get_library),
):
    record = library.borrow(principal, payload.user_id, payload.book_id, payload.due_date)
    return LendingCreatedModel(message="Book lent successfully.", lending_id=record.id)


@app.put("/lendings")
def update_lending(
    payload: LendingUpdateModel,
    principal: Principal = Depends(get_principal),
    library: Library = Depends(get_library),
) -> Dict[str, Any]:
    update = LendingUpdate(
        status=payload.status,
        returned_date=payload.returned_date.isoformat() if payload.returned_date else None,
    )
    library.update_lending(principal, payload.lending_id, update)
    return {"message": "Lending record updated successfully."}


@app.get("/lendings")
def list_lendings(
    user_id: int = Query(..., gt=0, description="Borrower whose lendings to list"),
    principal: Principal = Depends(get_principal),
    library: Library = Depends(get_library),
) -> Dict[str, Any]:
    rows = library.list_user_lendings(principal, user_id)
    if not rows:
        return {"message": "No lending records found for this user.", "data": []}
    return {"data": [LendingWithBookModel(**row).model_dump() for row in rows]}


@app.post("/lendings/overdue")
def sweep_overdue(
    payload: Optional[OverdueSweepModel] = Body(default=None),
    principal: Principal = Depends(get_principal),
    library: Library = Depends(get_library),
) -> Dict[str, Any]:
    as_of = payload.as_of if payload else None
    count = library.mark_overdue(principal, as_of)
    return {"message": f"{count} lending record(s) marked overdue.", "updated": count}


# --- Catalog administration ---
@app.post("/books", response_model=BookModel, status_code=201)
def add_book(
    payload: BookCreateModel,
    principal: Principal = Depends(get_principal),
    library: Library = Depends(get_library),
):
    authorize(principal, settings.catalog_min_privilege)
    book = library.inventory.add_book(Book(**payload.model_dump()))
    return BookModel(**book.to_dict())


@app.get("/books/{book_id}", response_model=BookModel)
def get_book(book_id: int, library: Library = Depends(get_library)):
    return BookModel(**library.inventory.get_book(book_id).to_dict())


@app.put("/books/{book_id}/stock", response_model=BookModel)
def restock_book(
    book_id: int,
    payload: StockModel,
    principal: Principal = Depends(get_principal),
    library: Library = Depends(get_library),
):
    authorize(principal, settings.admin_privilege_level)
    return BookModel(**library.inventory.set_stock(book_id, payload.stock).to_dict())


@app.delete("/books/{book_id}")
def delete_book(
    book_id: int,
    principal: Principal = Depends(get_principal),
    library: Library = Depends(get_library),
) -> Dict[str, Any]:
    authorize(principal, settings.admin_privilege_level)
    library.inventory.delete_book(book_id)
    return {"message": "Book deleted successfully."}

import functools
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from enum import Enum
from typing import Callable, Optional

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .entities import CopyRecord, TitleRecord
from .errors import InvalidStateError, NotFoundError, StoreError
from .models import (
    Copy,
    NewCopy,
    NewTitle,
    SearchPage,
    SortField,
    SortOrder,
    Title,
    TitleCounts,
    TitlePage,
    TitleUpdate,
    TitleWithAvailability,
)

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    SortField.ID: TitleRecord.id,
    SortField.ISBN: TitleRecord.isbn,
    SortField.TITLE: TitleRecord.title,
    SortField.AUTHOR: TitleRecord.author,
    SortField.GENRE: TitleRecord.genre,
    SortField.COVER: TitleRecord.cover,
    SortField.TOTAL_COPIES: TitleRecord.total_copies,
    SortField.AVAILABLE_COPIES: TitleRecord.available_copies,
}

NO_SYNC = {"synchronize_session": False}


class FailurePolicy(str, Enum):
    """What an operation hands back to its caller when it fails."""

    RAISE = "raise"
    RETURN_NONE = "return_none"
    RETURN_EMPTY = "return_empty"


def store_operation(policy: FailurePolicy, fallback: Optional[Callable] = None):
    """Run a repository method in a span and apply its failure policy.

    ``RAISE`` turns store errors into :class:`StoreError` and lets domain errors
    through untouched. The soft policies log whatever went wrong and return
    ``fallback(*args, **kwargs)`` (or ``None`` without a fallback).
    """

    def decorator(method):
        name = method.__name__

        def soft_result(span, exc, args, kwargs):
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            logger.exception("inventory.operation.failed", extra={"operation": name, "policy": policy.value})
            return fallback(*args, **kwargs) if fallback else None

        @functools.wraps(method)
        def wrapper(self, *args, **kwargs):
            with self._tracer.start_as_current_span(f"inventory.{name}") as span:
                span.set_attribute("inventory.failure_policy", policy.value)
                try:
                    return method(self, *args, **kwargs)
                except SQLAlchemyError as exc:
                    if policy is FailurePolicy.RAISE:
                        logger.exception("inventory.store.failed", extra={"operation": name})
                        raise StoreError(f"{name} failed: {exc}") from exc
                    return soft_result(span, exc, args, kwargs)
                except Exception as exc:  # noqa: BLE001
                    if policy is FailurePolicy.RAISE:
                        raise
                    return soft_result(span, exc, args, kwargs)

        wrapper.failure_policy = policy
        return wrapper

    return decorator


def _page_offset(page: int, page_size: int) -> int:
    if page < 1:
        raise ValueError(f"page must be >= 1, got {page}")
    if page_size < 1:
        raise ValueError(f"page_size must be >= 1, got {page_size}")
    return (page - 1) * page_size


def _total_pages(total_count: int, page_size: int) -> int:
    return math.ceil(total_count / page_size)


def _empty_search_page(*args, **kwargs) -> SearchPage:
    # search_titles(query, page, page_size): page may arrive positionally
    page = kwargs.get("page", args[1] if len(args) > 1 else 1)
    return SearchPage.empty(page if isinstance(page, int) else 0)


def _filtered(stmt, clause):
    return stmt if clause is None else stmt.where(clause)


class InventoryRepository:
    def __init__(
        self,
        session_factory: sessionmaker,
        tracer: Optional[trace.Tracer] = None,
        default_page_size: int = 10,
    ):
        self._session_factory = session_factory
        self._tracer = tracer or trace.get_tracer(__name__)
        self.default_page_size = default_page_size

    # titles

    @store_operation(FailurePolicy.RAISE)
    def create_title(
        self,
        isbn: str,
        title: str,
        author: str,
        genre: str,
        total_copies: int,
        available_copies: int,
        cover: str = "",
    ) -> Title:
        payload = NewTitle(
            isbn=isbn,
            title=title,
            author=author,
            genre=genre,
            total_copies=total_copies,
            available_copies=available_copies,
            cover=cover,
        )
        with self._session_factory.begin() as session:
            record = TitleRecord(**payload.model_dump())
            session.add(record)
            session.flush()
            created = self._to_title(record)
        logger.info("title.created", extra={"title_id": created.id, "isbn": created.isbn})
        return created

    @store_operation(FailurePolicy.RAISE)
    def list_titles(
        self,
        page: int = 1,
        page_size: Optional[int] = None,
        sort_field: SortField | str = SortField.TITLE,
        sort_order: SortOrder | str = SortOrder.ASC,
        search_query: str = "",
    ) -> TitlePage:
        if page_size is None:
            page_size = self.default_page_size
        offset = _page_offset(page, page_size)
        column = SORT_COLUMNS[SortField(sort_field)]
        ordering = column.desc() if SortOrder.parse(sort_order) is SortOrder.DESC else column.asc()

        clause = None
        if search_query:
            clause = or_(
                TitleRecord.title.contains(search_query, autoescape=True),
                TitleRecord.author.contains(search_query, autoescape=True),
                TitleRecord.isbn.contains(search_query, autoescape=True),
            )

        rows = _filtered(select(TitleRecord), clause).order_by(ordering, TitleRecord.id.asc())
        rows = rows.limit(page_size).offset(offset)
        count = _filtered(select(func.count()).select_from(TitleRecord), clause)

        items, total_count = self._rows_and_count(rows, count)
        return TitlePage(items=items, total_count=total_count, total_pages=_total_pages(total_count, page_size))

    @store_operation(FailurePolicy.RETURN_EMPTY, fallback=lambda *args, **kwargs: [])
    def list_recent_titles(self, limit: int) -> list[Title]:
        stmt = select(TitleRecord).order_by(TitleRecord.id.desc()).limit(limit)
        with self._session_factory() as session:
            return [self._to_title(record) for record in session.scalars(stmt)]

    @store_operation(FailurePolicy.RAISE)
    def get_title(self, title_id: int) -> Optional[Title]:
        with self._session_factory() as session:
            record = session.get(TitleRecord, title_id)
            return self._to_title(record) if record is not None else None

    @store_operation(FailurePolicy.RAISE)
    def get_title_with_availability(self, title_id: int) -> Optional[TitleWithAvailability]:
        """Return the title merged with the live count of its unborrowed copies."""
        with self._session_factory() as session:
            record = session.get(TitleRecord, title_id)
            if record is None:
                return None
            available = session.scalar(
                select(func.count())
                .select_from(CopyRecord)
                .where(CopyRecord.book_id == title_id, CopyRecord.borrowed.is_(False))
            )
            return TitleWithAvailability(**self._to_title(record).model_dump(), available_books=int(available))

    @store_operation(FailurePolicy.RETURN_NONE)
    def update_title_counts(self, title_id: int, total_copies: int, available_copies: int) -> Optional[Title]:
        """Overwrite the cached copy counters of a title.

        Returns ``None`` when the title does not exist *and* when the update
        fails; only the failure is logged.
        """
        counts = TitleCounts(total_copies=total_copies, available_copies=available_copies)
        with self._session_factory.begin() as session:
            record = session.get(TitleRecord, title_id)
            if record is None:
                return None
            for field, value in counts.model_dump().items():
                setattr(record, field, value)
            session.flush()
            return self._to_title(record)

    @store_operation(FailurePolicy.RAISE)
    def update_title(
        self,
        title_id: int,
        title: str,
        author: str,
        genre: str,
        isbn: str,
        total_copies: int,
        available_copies: int,
        cover: str = "",
    ) -> int:
        payload = TitleUpdate(
            isbn=isbn,
            title=title,
            author=author,
            genre=genre,
            total_copies=total_copies,
            available_copies=available_copies,
            cover=cover,
        )
        stmt = (
            update(TitleRecord)
            .where(TitleRecord.id == title_id)
            .values(**payload.model_dump())
            .execution_options(**NO_SYNC)
        )
        with self._session_factory.begin() as session:
            result = session.execute(stmt)
            return result.rowcount

    @store_operation(FailurePolicy.RETURN_NONE)
    def delete_title(self, title_id: int) -> None:
        stmt = delete(TitleRecord).where(TitleRecord.id == title_id).execution_options(**NO_SYNC)
        with self._session_factory.begin() as session:
            result = session.execute(stmt)
        logger.info("title.deleted", extra={"title_id": title_id, "rows": result.rowcount})

    @store_operation(FailurePolicy.RETURN_EMPTY, fallback=_empty_search_page)
    def search_titles(self, query: str, page: int = 1, page_size: Optional[int] = None) -> SearchPage:
        if page_size is None:
            page_size = self.default_page_size
        offset = _page_offset(page, page_size)
        clause = or_(
            TitleRecord.title.icontains(query, autoescape=True),
            TitleRecord.author.icontains(query, autoescape=True),
            TitleRecord.isbn.icontains(query, autoescape=True),
            TitleRecord.genre.icontains(query, autoescape=True),
        )
        rows = select(TitleRecord).where(clause).order_by(TitleRecord.id.desc()).limit(page_size).offset(offset)
        count = select(func.count()).select_from(TitleRecord).where(clause)

        items, total_count = self._rows_and_count(rows, count)
        return SearchPage(
            items=items,
            total_count=total_count,
            total_pages=_total_pages(total_count, page_size),
            current_page=page,
        )

    # copies

    @store_operation(FailurePolicy.RAISE)
    def create_copy(
        self,
        book_id: int,
        borrowed: bool = False,
        return_date: Optional[date] = None,
        user_id: Optional[str] = None,
        curr_transaction_id: Optional[int] = None,
    ) -> Copy:
        payload = NewCopy(
            book_id=book_id,
            borrowed=borrowed,
            return_date=return_date,
            user_id=user_id,
            curr_transaction_id=curr_transaction_id,
        )
        with self._session_factory.begin() as session:
            record = CopyRecord(**payload.model_dump())
            session.add(record)
            session.flush()
            created = self._to_copy(record)
        logger.info("copy.created", extra={"pid": created.pid, "book_id": created.book_id})
        return created

    @store_operation(FailurePolicy.RAISE)
    def list_copies(self, book_id: int) -> list[Copy]:
        stmt = select(CopyRecord).where(CopyRecord.book_id == book_id).order_by(CopyRecord.pid)
        with self._session_factory() as session:
            return [self._to_copy(record) for record in session.scalars(stmt)]

    @store_operation(FailurePolicy.RAISE)
    def count_copies(self, book_id: int) -> int:
        """Count every copy of a title, borrowed or not."""
        stmt = select(func.count()).select_from(CopyRecord).where(CopyRecord.book_id == book_id)
        with self._session_factory() as session:
            return int(session.scalar(stmt))

    @store_operation(FailurePolicy.RAISE)
    def delete_copy(self, pid: int) -> bool:
        """Delete a copy unless it is currently borrowed.

        The borrowed check is part of the DELETE itself, so a concurrent borrow
        cannot slip in between check and delete. When nothing was deleted the
        row is re-read in the same transaction to report why.
        """
        stmt = (
            delete(CopyRecord)
            .where(CopyRecord.pid == pid, CopyRecord.borrowed.is_(False))
            .execution_options(**NO_SYNC)
        )
        with self._session_factory.begin() as session:
            if session.execute(stmt).rowcount:
                logger.info("copy.deleted", extra={"pid": pid})
                return True
            record = session.get(CopyRecord, pid)
            if record is None:
                raise NotFoundError("copy", pid)
            logger.warning("copy.delete.rejected", extra={"pid": pid, "book_id": record.book_id})
            raise InvalidStateError("cannot remove a borrowed copy")

    # helpers

    def _rows_and_count(self, rows_stmt, count_stmt) -> tuple[list[Title], int]:
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="inventory") as pool:
            rows_future = pool.submit(self._fetch_titles, rows_stmt)
            count_future = pool.submit(self._fetch_count, count_stmt)
            return rows_future.result(), count_future.result()

    def _fetch_titles(self, stmt) -> list[Title]:
        with self._session_factory() as session:
            return [self._to_title(record) for record in session.scalars(stmt)]

    def _fetch_count(self, stmt) -> int:
        with self._session_factory() as session:
            return int(session.scalar(stmt))

    @staticmethod
    def _to_title(record: TitleRecord) -> Title:
        return Title.model_validate(record, from_attributes=True)

    @staticmethod
    def _to_copy(record: CopyRecord) -> Copy:
        return Copy.model_validate(record, from_attributes=True)

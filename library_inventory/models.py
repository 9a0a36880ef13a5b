from datetime import date
from enum import Enum

from pydantic import BaseModel, Field


class SortField(str, Enum):
    ID = "id"
    ISBN = "isbn"
    TITLE = "title"
    AUTHOR = "author"
    GENRE = "genre"
    COVER = "cover"
    TOTAL_COPIES = "total_copies"
    AVAILABLE_COPIES = "available_copies"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            aliases = {"totalCopies": cls.TOTAL_COPIES, "availableCopies": cls.AVAILABLE_COPIES}
            return aliases.get(value)
        return None


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"

    @classmethod
    def parse(cls, value) -> "SortOrder":
        return cls.DESC if value in (cls.DESC, "desc") else cls.ASC


class Title(BaseModel):
    id: int
    isbn: str
    title: str
    author: str
    genre: str
    cover: str
    total_copies: int
    # stored counter; see TitleWithAvailability.available_books for the derived count
    available_copies: int


class TitleWithAvailability(Title):
    """A title plus the number of its copies that are not borrowed right now.

    ``available_books`` is counted from ``physical_books`` at read time and may
    legitimately differ from the cached ``available_copies`` column.
    """

    available_books: int


class NewTitle(BaseModel):
    isbn: str = Field(min_length=1, max_length=32)
    title: str = Field(min_length=1, max_length=255)
    author: str = Field(min_length=1, max_length=255)
    genre: str = Field(min_length=1, max_length=255)
    total_copies: int = Field(ge=0)
    available_copies: int = Field(ge=0)
    cover: str = Field(default="", max_length=1024)


class TitleUpdate(NewTitle):
    pass


class TitleCounts(BaseModel):
    total_copies: int = Field(ge=0)
    available_copies: int = Field(ge=0)


class Copy(BaseModel):
    pid: int
    book_id: int
    borrowed: bool
    return_date: date | None = None
    user_id: str | None = None
    curr_transaction_id: int | None = None


class NewCopy(BaseModel):
    book_id: int
    borrowed: bool = False
    return_date: date | None = None
    user_id: str | None = Field(default=None, max_length=255)
    curr_transaction_id: int | None = None


class TitlePage(BaseModel):
    items: list[Title]
    total_count: int
    total_pages: int


class SearchPage(TitlePage):
    current_page: int

    @classmethod
    def empty(cls, page: int) -> "SearchPage":
        return cls(items=[], total_count=0, total_pages=0, current_page=page)

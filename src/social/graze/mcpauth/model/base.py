from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, orm
from sqlalchemy.orm import mapped_column

from typing_extensions import Annotated

str64 = Annotated[str, 64]
str255 = Annotated[str, 255]
str1024 = Annotated[str, 1024]
tokenpk = Annotated[str, mapped_column(String(128), primary_key=True)]


class Base(orm.DeclarativeBase):
    type_annotation_map = {
        str64: String(64),
        str255: String(255),
        str1024: String(1024),
        tokenpk: String(128),
    }


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from backends without timezone support."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def join_scopes(scopes) -> str:
    return " ".join(scopes)


def split_scopes(value: Optional[str]) -> list:
    if not value:
        return []
    return value.split()

from datetime import datetime, timezone

from sqlalchemy import (
    String,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column

from ..db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SheetTable(Base):
    """A named table with an ordered header row."""

    __tablename__ = "sheet_tables"

    name: Mapped[str] = mapped_column(String(100), primary_key=True)
    columns: Mapped[list] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class SheetRow(Base):
    """One data row; `data` maps header column -> cell value."""

    __tablename__ = "sheet_rows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    table_name: Mapped[str] = mapped_column(
        String(100), ForeignKey("sheet_tables.name", ondelete="CASCADE"), nullable=False
    )
    data: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("idx_sheet_rows_table_id", "table_name", "id"),
    )

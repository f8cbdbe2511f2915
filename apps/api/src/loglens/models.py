from datetime import datetime

from sqlalchemy import DateTime, ForeignKeyConstraint, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from loglens.db import Base


class IngestedDocument(Base):
    __tablename__ = "ingested_documents"

    id: Mapped[str] = mapped_column(String(512), primary_key=True)
    source_id: Mapped[str] = mapped_column(String(1024), primary_key=True)
    version: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )


class IngestedRecord(Base):
    __tablename__ = "ingested_records"
    __table_args__ = (
        ForeignKeyConstraint(
            ["document_id", "document_source_id"],
            ["ingested_documents.id", "ingested_documents.source_id"],
            ondelete="CASCADE",
        ),
        Index("idx_ingested_records_document", "document_source_id", "document_id"),
    )

    id: Mapped[str] = mapped_column(String(512), primary_key=True)
    document_id: Mapped[str] = mapped_column(String(512), primary_key=True)
    document_source_id: Mapped[str] = mapped_column(String(1024), primary_key=True)
    ordinal: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        server_default=text("0"),
    )

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from loglens.models import IngestedDocument, IngestedRecord
from loglens.services.rag.types import Document, LedgerDocument


class LedgerError(RuntimeError):
    pass


class IngestionLedger:
    """Durable record of every ingested document and the index keys it owns.

    Rows are keyed by ``(id, source_id)``; each document owns an ordered set of
    records whose ids are the chunk keys written to the semantic index.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def get_document(self, document_id: str, source_id: str) -> LedgerDocument | None:
        try:
            with Session(self._engine) as session:
                row = session.get(IngestedDocument, (document_id, source_id))
                if row is None:
                    return None
                record_ids = session.scalars(
                    select(IngestedRecord.id)
                    .where(IngestedRecord.document_id == document_id)
                    .where(IngestedRecord.document_source_id == source_id)
                    .order_by(IngestedRecord.ordinal.asc(), IngestedRecord.id.asc())
                ).all()
                return LedgerDocument(
                    id=row.id,
                    source_id=row.source_id,
                    version=row.version,
                    record_ids=tuple(record_ids),
                )
        except SQLAlchemyError as exc:
            raise LedgerError(f"ledger lookup failed for {source_id}/{document_id}: {exc}") from exc

    def list_documents(self, source_id: str) -> dict[str, LedgerDocument]:
        try:
            with Session(self._engine) as session:
                rows = session.scalars(
                    select(IngestedDocument)
                    .where(IngestedDocument.source_id == source_id)
                    .order_by(IngestedDocument.id.asc())
                ).all()
                record_rows = session.execute(
                    select(IngestedRecord.document_id, IngestedRecord.id)
                    .where(IngestedRecord.document_source_id == source_id)
                    .order_by(
                        IngestedRecord.document_id.asc(),
                        IngestedRecord.ordinal.asc(),
                        IngestedRecord.id.asc(),
                    )
                ).all()
        except SQLAlchemyError as exc:
            raise LedgerError(f"ledger enumeration failed for {source_id}: {exc}") from exc

        records_by_document: dict[str, list[str]] = {}
        for document_id, record_id in record_rows:
            records_by_document.setdefault(document_id, []).append(record_id)

        return {
            row.id: LedgerDocument(
                id=row.id,
                source_id=row.source_id,
                version=row.version,
                record_ids=tuple(records_by_document.get(row.id, ())),
            )
            for row in rows
        }

    def replace_document(self, document: Document, record_ids: Sequence[str]) -> LedgerDocument:
        """Upsert ``document`` and replace its full record set in one transaction."""
        now = datetime.now(timezone.utc)
        try:
            with Session(self._engine) as session, session.begin():
                session.execute(
                    delete(IngestedRecord)
                    .where(IngestedRecord.document_id == document.id)
                    .where(IngestedRecord.document_source_id == document.source_id)
                )

                row = session.get(IngestedDocument, (document.id, document.source_id))
                if row is None:
                    session.add(
                        IngestedDocument(
                            id=document.id,
                            source_id=document.source_id,
                            version=document.version,
                            created_at=now,
                            updated_at=now,
                        )
                    )
                else:
                    row.version = document.version
                    row.updated_at = now

                session.add_all(
                    IngestedRecord(
                        id=record_id,
                        document_id=document.id,
                        document_source_id=document.source_id,
                        ordinal=ordinal,
                    )
                    for ordinal, record_id in enumerate(record_ids)
                )
        except SQLAlchemyError as exc:
            raise LedgerError(
                f"ledger commit failed for {document.source_id}/{document.id}: {exc}"
            ) from exc

        return LedgerDocument(
            id=document.id,
            source_id=document.source_id,
            version=document.version,
            record_ids=tuple(record_ids),
        )

    def delete_document(self, document_id: str, source_id: str) -> None:
        try:
            with Session(self._engine) as session, session.begin():
                session.execute(
                    delete(IngestedRecord)
                    .where(IngestedRecord.document_id == document_id)
                    .where(IngestedRecord.document_source_id == source_id)
                )
                session.execute(
                    delete(IngestedDocument)
                    .where(IngestedDocument.id == document_id)
                    .where(IngestedDocument.source_id == source_id)
                )
        except SQLAlchemyError as exc:
            raise LedgerError(f"ledger delete failed for {source_id}/{document_id}: {exc}") from exc

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from loglens.models import IngestedDocument, IngestedRecord
from loglens.services.rag.ledger import IngestionLedger
from loglens.services.rag.types import Document


def _record_count(engine: Engine) -> int:
    with Session(engine) as session:
        return session.scalar(select(func.count()).select_from(IngestedRecord))


def test_replace_document_creates_and_lists_records(ledger: IngestionLedger) -> None:
    document = Document(id="a.json", source_id="JsonLogDirectorySource:/logs", version="v1")

    stored = ledger.replace_document(document, ["a_1", "a_2"])

    assert stored.record_ids == ("a_1", "a_2")
    listed = ledger.list_documents("JsonLogDirectorySource:/logs")
    assert listed == {"a.json": stored}
    assert ledger.get_document("a.json", "JsonLogDirectorySource:/logs") == stored


def test_replace_document_swaps_version_and_record_set(
    ledger: IngestionLedger, ledger_engine: Engine
) -> None:
    source_id = "JsonLogDirectorySource:/logs"
    ledger.replace_document(Document(id="a.json", source_id=source_id, version="v1"), ["a_1", "a_2", "a_3"])

    ledger.replace_document(Document(id="a.json", source_id=source_id, version="v2"), ["a_1"])

    document = ledger.get_document("a.json", source_id)
    assert document.version == "v2"
    assert document.record_ids == ("a_1",)
    assert _record_count(ledger_engine) == 1


def test_documents_are_scoped_by_source(ledger: IngestionLedger) -> None:
    ledger.replace_document(Document(id="a.json", source_id="first", version="v1"), ["a_1"])
    ledger.replace_document(Document(id="a.json", source_id="second", version="v9"), ["a_1"])

    assert ledger.list_documents("first")["a.json"].version == "v1"
    assert ledger.list_documents("second")["a.json"].version == "v9"
    assert ledger.list_documents("third") == {}


def test_delete_document_removes_its_records(
    ledger: IngestionLedger, ledger_engine: Engine
) -> None:
    ledger.replace_document(Document(id="a.json", source_id="src", version="v1"), ["a_1", "a_2"])
    ledger.replace_document(Document(id="b.json", source_id="src", version="v1"), ["b_1"])

    ledger.delete_document("a.json", "src")

    assert ledger.get_document("a.json", "src") is None
    assert list(ledger.list_documents("src")) == ["b.json"]
    assert _record_count(ledger_engine) == 1
    with Session(ledger_engine) as session:
        assert session.scalar(select(func.count()).select_from(IngestedDocument)) == 1


def test_record_order_follows_chunk_order(ledger: IngestionLedger) -> None:
    keys = [f"manual.pdf/{page}_0" for page in range(12, 0, -1)]
    ledger.replace_document(Document(id="manual.pdf", source_id="src", version="v1"), keys)

    assert ledger.get_document("manual.pdf", "src").record_ids == tuple(keys)

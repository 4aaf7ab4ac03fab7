"""Tests for the in-memory store and upload ingestion."""

from __future__ import annotations

import zipfile
from pathlib import Path

from docmind.documents import DocumentIngestor, DocumentStore, UploadedFile


def test_store_assigns_unique_ids_and_keeps_order(store: DocumentStore):
    first = store.add("a.txt", "alpha")
    second = store.add("b.txt", "beta", media_type="text/markdown")
    assert first.document_id != second.document_id
    assert store.names() == ("a.txt", "b.txt")
    assert [d.document_id for d in store] == [first.document_id, second.document_id]
    assert second.media_type == "text/markdown"
    assert first.created_at.tzinfo is not None
    assert first.document_id in store and len(store) == 2


def test_remove_is_a_noop_for_unknown_ids(store: DocumentStore):
    document = store.add("a.txt", "alpha")
    assert store.remove("missing") is False
    assert store.remove(document.document_id) is True
    assert store.remove(document.document_id) is False
    assert len(store) == 0


def test_list_is_a_snapshot(store: DocumentStore):
    store.add("a.txt", "alpha")
    snapshot = store.list()
    store.add("b.txt", "beta")
    assert len(snapshot) == 1
    store.clear()
    assert store.list() == ()


def test_bad_upload_does_not_block_the_batch(store: DocumentStore):
    ingestor = DocumentIngestor(store)
    report = ingestor.ingest_uploads(
        [
            UploadedFile(name="good.txt", data=b"Revenue grew."),
            UploadedFile(name="bad.bin", data=b"\xff\xfe\xfa not utf-8", media_type="application/octet-stream"),
            UploadedFile(name="notes.md", data="Café notes".encode("utf-8"), media_type="text/markdown"),
        ],
    )
    assert [d.name for d in report.documents] == ["good.txt", "notes.md"]
    assert [f.name for f in report.failures] == ["bad.bin"]
    assert not report.ok
    assert store.names() == ("good.txt", "notes.md")


def test_uploads_are_not_filtered_by_type_or_size(store: DocumentStore):
    report = DocumentIngestor(store).ingest_uploads(
        [
            UploadedFile(name="data.csv", data=b"a,b\n1,2", media_type="text/csv"),
            UploadedFile(name="empty.txt", data=b""),
        ],
    )
    assert report.ok
    assert [d.media_type for d in report.documents] == ["text/csv", "text/plain"]


def test_crlf_uploads_segment_like_unix_text(store: DocumentStore):
    report = DocumentIngestor(store).ingest_uploads([UploadedFile(name="win.txt", data=b"one\r\n\r\ntwo")])
    assert report.documents[0].content == "one\n\ntwo"


def test_ingest_paths_reads_text_files_and_records_failures(tmp_path: Path, store: DocumentStore):
    notes = tmp_path / "notes.txt"
    notes.write_text("First paragraph.\n\nSecond paragraph.", encoding="utf-8")
    readme = tmp_path / "README.md"
    readme.write_text("# Title\n\nBody", encoding="utf-8")

    report = DocumentIngestor(store).ingest_paths([notes, tmp_path / "missing.txt", readme])

    assert [d.name for d in report.documents] == ["notes.txt", "README.md"]
    assert report.documents[0].content == "First paragraph.\n\nSecond paragraph."
    assert [f.name for f in report.failures] == ["missing.txt"]


def _write_pdf(path: Path, text: str) -> None:
    content = f"BT /F1 12 Tf 72 720 Td ({text}) Tj ET".encode("latin-1")
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] /Contents 4 0 R "
        b"/Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length %d >>\nstream\n" % len(content) + content + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"
    xref = len(out)
    out += b"xref\n0 %d\n0000000000 65535 f \n" % (len(objects) + 1)
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (len(objects) + 1, xref)
    path.write_bytes(bytes(out))


def _write_docx(path: Path, paragraphs: list[str]) -> None:
    body = "".join(f"<w:p><w:r><w:t>{text}</w:t></w:r></w:p>" for text in paragraphs)
    document = (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
        '<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main">'
        f"<w:body>{body}</w:body></w:document>"
    )
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("word/document.xml", document)


def test_ingest_paths_uses_format_loaders(tmp_path: Path, store: DocumentStore):
    pdf = tmp_path / "report.pdf"
    _write_pdf(pdf, "Revenue grew in Quebec.")
    docx = tmp_path / "plan.docx"
    _write_docx(docx, ["Hiring is paused.", "Support backlog clears in May."])
    html = tmp_path / "policy.html"
    html.write_text(
        "<html><head><title>Policy</title></head><body><p>Passwords rotate every ninety days.</p></body></html>",
        encoding="utf-8",
    )

    report = DocumentIngestor(store).ingest_paths([pdf, docx, html])

    assert report.ok
    by_name = {document.name: document for document in report.documents}
    assert "Revenue grew in Quebec." in by_name["report.pdf"].content
    assert by_name["report.pdf"].media_type == "application/pdf"
    assert "Hiring is paused." in by_name["plan.docx"].content
    assert "Support backlog clears in May." in by_name["plan.docx"].content
    assert "Passwords rotate every ninety days." in by_name["policy.html"].content
    assert len(store) == 3


def test_unreadable_pdf_is_a_per_file_failure(tmp_path: Path, store: DocumentStore):
    broken = tmp_path / "broken.pdf"
    broken.write_bytes(b"not a pdf at all")
    notes = tmp_path / "notes.txt"
    notes.write_text("Still ingested.", encoding="utf-8")

    report = DocumentIngestor(store).ingest_paths([broken, notes])

    assert [f.name for f in report.failures] == ["broken.pdf"]
    assert [d.name for d in report.documents] == ["notes.txt"]

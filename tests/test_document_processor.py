"""
Tests for internal document loading, chunking and keyword search.
"""

from docx import Document

from botbu.src.core.document_processor import DocumentIndex, LoadedDocument, chunk_text, format_context, search_documents
from botbu.src.utils.text_utils import friendly_source_name


class TestChunkText:

    def test_short_text_is_single_chunk(self):
        assert chunk_text("One sentence. Another one.") == ["One sentence Another one."]

    def test_long_text_splits_with_word_overlap(self):
        sentence = " ".join(["word"] * 30)
        text = ". ".join(f"{sentence} s{i}" for i in range(10))

        chunks = chunk_text(text, chunk_size=400, overlap=50)

        assert len(chunks) > 1
        assert all(len(c) <= 400 + len(sentence) + 20 for c in chunks)
        tail_of_first = chunks[0].split(" ")[-10:]
        assert chunks[1].split(" ")[:10] == tail_of_first


class TestSearchDocuments:

    def _docs(self):
        return [
            LoadedDocument("dining_hours_policy.txt", ("Hinman dining hall opens at 7 AM", "Meal plans accepted everywhere")),
            LoadedDocument("cs_exam_schedule.txt", ("CS 240 final exam Monday", "Conflict exams by request")),
        ]

    def test_scores_are_fraction_of_terms_matched(self):
        results = search_documents(self._docs(), "hinman dining hours", max_results=5)

        assert results[0].file_name == "dining_hours_policy.txt"
        assert results[0].chunk_index == 0
        assert results[0].match_count == 2
        assert results[0].relevance_score == 2 / 3

    def test_non_matching_chunks_dropped_and_limit_applied(self):
        results = search_documents(self._docs(), "exam exams", max_results=1)

        assert len(results) == 1
        assert results[0].file_name == "cs_exam_schedule.txt"

    def test_empty_inputs(self):
        assert search_documents([], "anything") == []
        assert search_documents(self._docs(), "a an") == []

    def test_context_uses_friendly_labels(self):
        context = format_context(search_documents(self._docs(), "hinman"))

        assert context.startswith("INTERNAL DOCUMENTS CONTEXT:")
        assert "[Document: Dining Services Information]" in context
        assert "dining_hours_policy" not in context
        assert format_context([]) == ""


def test_friendly_source_names():
    assert friendly_source_name("cs_exam_schedule.txt") == "Computer Science Exam Schedule"
    assert friendly_source_name("DeleteLater.pdf") == "University Staff Directory"
    assert friendly_source_name("secret_notes.docx") == "Internal University Documents"


class TestDocumentIndex:

    async def test_reads_txt_and_docx(self, tmp_path):
        (tmp_path / "dining_hours_policy.txt").write_text("Hinman dining hall opens at 7 AM.", encoding="utf-8")
        doc = Document()
        doc.add_paragraph("Department office is in Engineering Building Q15.")
        doc.save(str(tmp_path / "department_contacts.docx"))
        (tmp_path / "notes.md").write_text("ignored", encoding="utf-8")

        documents = await DocumentIndex(tmp_path).load()

        assert [d.file_name for d in documents] == ["department_contacts.docx", "dining_hours_policy.txt"]

    async def test_unreadable_pdf_is_skipped(self, tmp_path):
        (tmp_path / "broken.pdf").write_bytes(b"this is not a pdf")
        (tmp_path / "dining_hours_policy.txt").write_text("Hinman opens at 7 AM.", encoding="utf-8")

        documents = await DocumentIndex(tmp_path).load()

        assert [d.file_name for d in documents] == ["dining_hours_policy.txt"]

    async def test_documents_cached_until_expiry(self, tmp_path, clock):
        index = DocumentIndex(tmp_path, cache_seconds=300, clock=clock)
        (tmp_path / "a.txt").write_text("first file", encoding="utf-8")
        assert len(await index.load()) == 1

        (tmp_path / "b.txt").write_text("second file", encoding="utf-8")
        clock.advance(299)
        assert len(await index.load()) == 1

        clock.advance(2)
        assert len(await index.load()) == 2

    async def test_internal_context(self, tmp_path):
        (tmp_path / "cs_exam_schedule.txt").write_text("CS 240 final exam is Monday.", encoding="utf-8")
        index = DocumentIndex(tmp_path)

        internal = await index.get_internal_context("cs 240 final")
        missing = await index.get_internal_context("parking permits")

        assert internal.sources == ["cs_exam_schedule.txt"]
        assert internal.chunk_count == 1
        assert "[Document: Computer Science Exam Schedule]" in internal.context
        assert missing is None

    async def test_missing_directory_yields_nothing(self, tmp_path):
        assert await DocumentIndex(tmp_path / "nope").get_internal_context("anything") is None

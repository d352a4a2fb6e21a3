"""Tests for summary-field operations and project metadata listing."""

import pytest

from app.core.errors import DocumentNotFoundError, ToolValidationError
from app.core.session import DocumentSession
from app.tools.summary import SummaryEditor
from infra.document_store import DocumentRecord, InMemoryDocumentStore


def _summary_editor(summary: str = "Short summary", project_id: str = "proj-1"):
    store = InMemoryDocumentStore([
        DocumentRecord(id="doc-1", name="Spec", content="<p>body</p>", summary=summary, project_id=project_id),
        DocumentRecord(id="doc-2", name="Notes", content="<p>other</p>", project_id=project_id),
        DocumentRecord(id="doc-3", name="Elsewhere", project_id="proj-2"),
    ])
    session = DocumentSession(store, session_id="test")
    session.bind("doc-1")
    return SummaryEditor(session), store


class TestSummaryMutations:
    def test_append(self):
        editor, store = _summary_editor("Short")
        result = editor.append(" and sweet")
        assert store.get("doc-1").summary == "Short and sweet"
        assert result.data["after"] == {"from": 5, "to": 15}
        assert result.data["summary_length"] == 15

    def test_insert(self):
        editor, store = _summary_editor("Short summary")
        editor.insert(6, "clear ")
        assert store.get("doc-1").summary == "Short clear summary"

    def test_insert_out_of_range(self):
        editor, store = _summary_editor("abc")
        with pytest.raises(ToolValidationError):
            editor.insert(4, "x")
        assert store.get("doc-1").summary == "abc"

    def test_replace(self):
        editor, store = _summary_editor("Short summary")
        result = editor.replace(0, 5, "Long")
        assert store.get("doc-1").summary == "Long summary"
        assert result.data["removed_content"] == "Short"

    def test_remove(self):
        editor, store = _summary_editor("Short summary")
        editor.remove(5, 13)
        assert store.get("doc-1").summary == "Short"

    def test_content_untouched(self):
        editor, store = _summary_editor()
        editor.append(" more")
        assert store.get("doc-1").content == "<p>body</p>"

    def test_reads_store_every_call(self):
        editor, store = _summary_editor("abc")
        store.update("doc-1", {"summary": "xyz"})
        editor.append("!")
        assert store.get("doc-1").summary == "xyz!"


class TestSummaryReads:
    def test_search(self):
        editor, _ = _summary_editor("Alpha beta alpha")
        data = editor.search("alpha").data
        assert data["total_matches"] == 2
        assert [m["position"] for m in data["matches"]] == [0, 11]

    def test_get_summary_of_active(self):
        editor, _ = _summary_editor("Short summary")
        data = editor.get_summary().data
        assert data["summary"] == "Short summary"
        assert data["document_id"] == "doc-1"

    def test_get_summary_of_other(self):
        editor, _ = _summary_editor()
        assert editor.get_summary("doc-2").data["summary"] == ""

    def test_get_summary_unknown_document(self):
        editor, _ = _summary_editor()
        with pytest.raises(DocumentNotFoundError):
            editor.get_summary("missing")


class TestProjectDocuments:
    def test_lists_project_metadata(self):
        editor, _ = _summary_editor()
        data = editor.list_project_documents().data
        assert data["project_id"] == "proj-1"
        assert data["count"] == 2
        assert sorted(d["name"] for d in data["documents"]) == ["Notes", "Spec"]
        for doc in data["documents"]:
            assert "content" not in doc
            assert "summary" not in doc

    def test_document_without_project(self):
        editor, _ = _summary_editor(project_id="")
        with pytest.raises(ToolValidationError, match="project"):
            editor.list_project_documents()

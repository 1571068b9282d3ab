"""Tests for the /analysis and /health API endpoints.

The app is built with ``create_app`` and fake collaborators; the SQLite
database lives in ``tmp_path``.  No network or Ollama/OpenAI calls are made.
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from mailsift import __version__
from mailsift.api.app import create_app
from mailsift.config import Settings
from mailsift.errors import FatalInputError
from mailsift.models import Document


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

_DOC = Document(
    id="offer",
    markup='<p><a href="https://jobs.example.com/1">See the job</a></p>',
    plaintext="We need a Go developer in Copenhagen.",
    subject="New jobs",
)


class _Documents:
    def get_document(self, document_id: str) -> Document:
        if document_id != _DOC.id:
            raise FatalInputError(f"document {document_id!r} not found", document_id)
        return _DOC


@pytest.fixture()
def classifier() -> MagicMock:
    fake = MagicMock()
    fake.rank.return_value = "NONE"
    fake.classify.return_value = json.dumps({
        "matched": True,
        "extractedData": {"skills": ["Go"], "location": "Copenhagen"},
        "reasoning": "Go role",
        "confidence": 0.9,
    })
    return fake


@pytest.fixture()
def client(tmp_path, classifier):
    """Return a TestClient whose database and collaborators are isolated."""
    settings = Settings(workspace_dir=tmp_path, debug_dir=None)
    app = create_app(settings, documents=_Documents(), classifier=classifier, web=MagicMock())

    with TestClient(app, raise_server_exceptions=True) as c:
        yield c


def _run(client, **overrides) -> dict:
    body = {
        "document_id": "offer",
        "match_criteria": "Go jobs",
        "extraction_fields": "skills, location",
    }
    body.update(overrides)
    resp = client.post("/analysis", json=body)
    assert resp.status_code == 200, resp.text
    return resp.json()


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

class TestHealth:
    def test_ok(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "version": __version__}


class TestCreateAnalysis:
    def test_completed_run(self, client):
        data = _run(client)

        assert data["state"] == "completed"
        assert data["result"]["matched_overall"] is True
        assert data["result"]["merged_fields"] == {"skills": ["Go"], "location": "Copenhagen"}
        assert data["result"]["by_source"][0]["source"] == "Document"
        assert data["links"]["candidates"] == 1
        assert data["links"]["prioritized"] == []

    def test_result_is_persisted(self, client):
        data = _run(client)

        resp = client.get(f"/analysis/{data['run_id']}")
        assert resp.status_code == 200
        stored = resp.json()
        assert stored["document_id"] == "offer"
        assert stored["result"]["overall_confidence"] == 0.9

    def test_extraction_context_reaches_classifier(self, client, classifier):
        _run(
            client,
            user_intent="Planning a move to backend work",
            extraction_examples='{"skills": ["Go"]}',
            analysis_feedback="Do not list soft skills",
        )

        criteria = classifier.classify.call_args.args[1]
        assert criteria.user_intent == "Planning a move to backend work"
        assert criteria.extraction_examples == '{"skills": ["Go"]}'
        assert criteria.analysis_feedback == "Do not list soft skills"

    def test_missing_document_is_404(self, client):
        resp = client.post(
            "/analysis",
            json={"document_id": "nope", "match_criteria": "x", "extraction_fields": "y"},
        )
        assert resp.status_code == 404
        assert "nope" in resp.json()["detail"]

    def test_classifier_failure_still_completes(self, client, classifier):
        classifier.classify.side_effect = RuntimeError("model down")
        data = _run(client, follow_links=False)

        assert data["state"] == "completed"
        assert data["result"]["matched_overall"] is False
        assert data["diagnostics"][0]["stage"] == "classify"

    def test_invalid_strategy_is_422(self, client):
        resp = client.post(
            "/analysis",
            json={
                "document_id": "offer",
                "match_criteria": "x",
                "extraction_fields": "y",
                "retrieval_strategy": "carrier_pigeon",
            },
        )
        assert resp.status_code == 422

    def test_non_positive_max_links_is_422(self, client):
        resp = client.post(
            "/analysis",
            json={"document_id": "offer", "match_criteria": "x", "extraction_fields": "y", "max_links": 0},
        )
        assert resp.status_code == 422

    def test_missing_fields_is_422(self, client):
        resp = client.post("/analysis", json={"document_id": "offer"})
        assert resp.status_code == 422


class TestListAnalyses:
    def test_empty_list(self, client):
        resp = client.get("/analysis")
        assert resp.status_code == 200
        assert resp.json() == []

    def test_lists_newest_first(self, client):
        first = _run(client)["run_id"]
        second = _run(client)["run_id"]

        ids = [r["run_id"] for r in client.get("/analysis").json()]
        assert ids == [second, first]

    def test_filters(self, client, classifier):
        _run(client)
        classifier.classify.return_value = '{"matched": false}'
        _run(client)

        assert len(client.get("/analysis", params={"matched_only": True}).json()) == 1
        assert client.get("/analysis", params={"document_id": "other"}).json() == []
        assert len(client.get("/analysis", params={"limit": 1}).json()) == 1


class TestGetAnalysis:
    def test_unknown_run_is_404(self, client):
        resp = client.get("/analysis/does-not-exist")
        assert resp.status_code == 404

"""Tests for RFC 7807 error conversion."""

from unified_file_sync.core.errors import ChainError, ErrorCode, UpsertError


def test_chain_error_problem_detail():
    error = ChainError("content_document_link", "stage is disabled by configuration")

    problem = error.to_problem_detail("/api/v1/sync/runs")

    assert problem["status"] == 503
    assert problem["title"] == "Chain Failed"
    assert problem["type"].endswith("/chain-failed")
    assert problem["errors"] == {"stage": "content_document_link"}
    assert "content_document_link" in problem["detail"]


def test_upsert_error_keeps_retryable_flag():
    error = UpsertError("k1", "UNABLE_TO_LOCK_ROW", retryable=True)

    assert error.code == ErrorCode.UPSERT_FAILED
    assert error.retryable is True
    assert error.message == "Upsert failed: UNABLE_TO_LOCK_ROW"

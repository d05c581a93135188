"""
Smoke tests for the CLI status view and the audit artifact.
"""
import json

from rich.console import Console

from elevate.core.workflow import ReconcileResult
from elevate.models.request import AccessRequest, RequestStatus
from elevate.ui.json_logger import log_audit_event
from elevate.ui.printer import print_request_status

from conftest import CREATED_AT


def _request():
    return AccessRequest(
        name="sudo-req", principal="alice", target_role="view", uid="uid-1",
        created_at=CREATED_AT, status=RequestStatus.READY,
        grant_ref="sudo-alice-view-sudo-req-2025.10.09.08.53.20",
        effective_expiry=CREATED_AT + 600,
    )


def test_status_view_renders_request():
    console = Console(record=True, width=160)
    print_request_status(_request(), ReconcileResult(requeue_after=90), console=console)

    text = console.export_text()
    assert "Ready" in text
    assert "2025-10-09T09:03:20Z" in text
    assert "re-evaluate in 1m30s" in text


def test_audit_artifact(tmp_path):
    path = log_audit_event(_request(), ReconcileResult(requeue_after=90.0), output_dir=str(tmp_path))

    with open(path) as f:
        entry = json.load(f)

    assert entry["correlation_id"] == "uid-1"
    assert entry["request"]["status"] == "Ready"
    assert entry["request"]["created_at"] == "2025-10-09T08:53:20+00:00"
    assert entry["request"]["requested_expiry"] is None
    assert entry["result"] == {"requeue": False, "requeue_after": 90.0}


def test_pending_view_explains_missing_binding():
    req = _request()
    req.status = RequestStatus.PENDING
    req.grant_ref = ""
    console = Console(record=True, width=200)

    print_request_status(req, ReconcileResult(requeue_after=600), console=console)

    assert "recorded as Ready on the next pass" in console.export_text()

import json
import os
import datetime
from dataclasses import asdict
from typing import Optional
from elevate.models.request import AccessRequest
from elevate.core.workflow import ReconcileResult

SCHEMA_VERSION = "2.0"

# Fields holding Unix epoch floats
TIMESTAMP_FIELDS = ["created_at", "requested_expiry", "effective_expiry"]


def to_serializable_dict(req: AccessRequest) -> dict:
    """
    Converts the request dataclass to a dictionary.
    Replaces raw float timestamps with human-readable ISO 8601 strings.
    """
    data = asdict(req)
    data["status"] = req.status.value if req.status else None

    for field in TIMESTAMP_FIELDS:
        val = data.get(field)
        if val and isinstance(val, (int, float)) and val > 0:
            data[field] = datetime.datetime.fromtimestamp(val, datetime.timezone.utc).isoformat()

    return data


def log_audit_event(req: AccessRequest, result: Optional[ReconcileResult], output_dir="audit_logs") -> str:
    """
    Writes the outcome of one reconcile pass to a durable JSON file.
    Returns the filepath of the created artifact.
    """
    os.makedirs(output_dir, exist_ok=True)

    now = datetime.datetime.now(datetime.timezone.utc)
    log_entry = {
        "schema_version": SCHEMA_VERSION,
        "timestamp": now.isoformat(),
        "correlation_id": req.uid,
        "request": to_serializable_dict(req),
        "result": asdict(result) if result is not None else None,
    }

    # Format: audit_logs/20261019T101500Z_my-request.json
    filename = f"{now.strftime('%Y%m%dT%H%M%SZ')}_{req.name}.json"
    filepath = os.path.join(output_dir, filename)

    with open(filepath, 'w') as f:
        json.dump(log_entry, f, indent=2)

    return filepath

import json
import os
import base64
import logging
from botocore.exceptions import ClientError

from elevate.adapters.reconcile_queue import ReconcileQueue
from elevate.adapters.state_store import RequestStore, AlreadyExistsError, StoreError
from elevate.models.request import AccessRequest
from elevate.validators import admit, validate_request_name, CREATE

logger = logging.getLogger()
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())

# --- THE WARM START CACHE ---
# Built on first use and kept between invocations
CACHED_STORE = None
CACHED_QUEUE = None


def get_store() -> RequestStore:
    global CACHED_STORE
    if CACHED_STORE is None:
        CACHED_STORE = RequestStore(os.environ['REQUESTS_TABLE'])
    return CACHED_STORE


def get_queue() -> ReconcileQueue:
    global CACHED_QUEUE
    if CACHED_QUEUE is None:
        CACHED_QUEUE = ReconcileQueue(os.environ['RECONCILE_QUEUE_URL'])
    return CACHED_QUEUE


def _response(status_code: int, body: dict) -> dict:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }


def get_caller(event: dict) -> str:
    """
    The caller identity is whatever the API Gateway authorizer vouched for.
    Never taken from the body: that is exactly what we are validating.
    """
    authorizer = event.get('requestContext', {}).get('authorizer') or {}
    return authorizer.get('principalId', '')


def parse_request(payload: dict) -> AccessRequest:
    expires = payload.get('requested_expiry')
    return AccessRequest(
        name=validate_request_name(payload.get('name', '')),
        principal=payload.get('principal', ''),
        target_role=payload.get('target_role', ''),
        reason=payload.get('reason', ''),
        requested_expiry=float(expires) if expires is not None else None,
    )


def lambda_handler(event, context):
    # --- 1. DECODE THE PAYLOAD ---
    raw_body = event.get('body') or ''
    if event.get('isBase64Encoded', False):
        raw_body = base64.b64decode(raw_body).decode('utf-8')

    caller = get_caller(event)
    if not caller:
        logger.error("No authenticated caller on request. Dropping request.")
        return _response(401, {"allowed": False, "reason": "Caller identity is required"})

    try:
        access_request = parse_request(json.loads(raw_body))
    except (json.JSONDecodeError, AttributeError, ValueError, TypeError) as e:
        logger.error(f"Malformed SudoRequest payload: {e}")
        return _response(400, {"allowed": False, "reason": f"Invalid request: {e}"})

    # --- 2. ADMISSION ---
    logger.info(f"Validating SudoRequest {access_request.name}")
    verdict = admit(access_request, caller, CREATE)
    if not verdict.allowed:
        logger.warning(f"Rejected SudoRequest {access_request.name}: {verdict.reason}")
        return _response(403, {"allowed": False, "reason": verdict.reason})

    # --- 3. STORE + SCHEDULE ---
    try:
        get_store().create(access_request)
        get_queue().enqueue(access_request.name)
    except AlreadyExistsError as e:
        return _response(409, {"allowed": False, "reason": str(e)})
    except KeyError as e:
        logger.error(f"CRITICAL: Missing required environment variable: {e}")
        return _response(500, {"allowed": False, "reason": "System configuration error."})
    except (StoreError, ClientError) as e:
        logger.error(f"Failed to store SudoRequest {access_request.name}: {e}")
        return _response(500, {"allowed": False, "reason": "System temporarily unavailable."})

    return _response(201, {"allowed": True, "name": access_request.name, "uid": access_request.uid})

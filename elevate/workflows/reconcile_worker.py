import json
import logging
import os
from typing import Any, Dict, Optional

from elevate.adapters.access_review import AccessDecisionClient
from elevate.adapters.binding_store import BindingStore
from elevate.adapters.reconcile_queue import ReconcileQueue
from elevate.adapters.state_store import RequestStore
from elevate.core.clock import Clock, SystemClock
from elevate.core.engine import PolicyEngine
from elevate.core.grants import GrantManager
from elevate.core.resolver import StatusResolver
from elevate.core.workflow import ReconcileWorkflow, ReconcileResult

logger = logging.getLogger(__name__)
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())

DEFAULT_POLICY_PATH = "config/sudo_policy.yaml"


class WorkerBootstrapError(Exception):
    """Raised when the worker cannot be configured from its environment."""
    pass


def build_reconciler(requests_table: str, grants_table: str, policy_path: str,
                     clock: Optional[Clock] = None, region_name: str = "us-east-1") -> ReconcileWorkflow:
    """
    Wires stores, oracle and resolver into a ReconcileWorkflow.
    Duration bounds come from the policy file's settings block.
    """
    clock = clock or SystemClock()
    engine = PolicyEngine(policy_path)
    resolver = StatusResolver(
        clock,
        default_duration=engine.default_duration_seconds,
        max_duration=engine.max_duration_seconds,
    )
    return ReconcileWorkflow(
        requests=RequestStore(requests_table, region_name=region_name),
        grants=GrantManager(BindingStore(grants_table, region_name=region_name)),
        access=AccessDecisionClient(engine),
        resolver=resolver,
        clock=clock,
    )


class ReconcileWorker:
    def __init__(self, workflow: ReconcileWorkflow, queue: ReconcileQueue):
        """
        Runs reconcile passes for queue messages and turns their results
        back into delayed messages.

        Args:
            workflow: The per-request reconcile driver
            queue: Where follow-up passes are scheduled
        """
        self.workflow = workflow
        self.queue = queue

    def process(self, name: str) -> ReconcileResult:
        result = self.workflow.reconcile(name)
        if result.requeue_after is not None:
            self.queue.enqueue(name, delay_seconds=result.requeue_after)
        elif result.requeue:
            self.queue.enqueue(name)
        return result


def _bootstrap_worker() -> ReconcileWorker:
    try:
        requests_table = os.environ['REQUESTS_TABLE']
        grants_table = os.environ['GRANTS_TABLE']
        queue_url = os.environ['RECONCILE_QUEUE_URL']
    except KeyError as e:
        logger.error(f"CRITICAL: Missing required environment variable: {e}")
        raise WorkerBootstrapError(f"Missing required environment variable: {e}")

    policy_path = os.environ.get('POLICY_PATH', DEFAULT_POLICY_PATH)
    region = os.environ.get('AWS_REGION', 'us-east-1')

    workflow = build_reconciler(requests_table, grants_table, policy_path, region_name=region)
    return ReconcileWorker(workflow, ReconcileQueue(queue_url))


def lambda_handler(event: Dict[str, Any], context) -> Dict[str, int]:
    """
    Lambda entry point for reconcile passes.

    Args:
        event: SQS event; each record body is {"name": "<request name>"}
        context: Lambda context object
    """
    worker = _bootstrap_worker()

    processed = 0
    malformed = 0
    requeued = 0

    for record in event.get('Records', []):
        message_id = record.get('messageId')
        try:
            body = json.loads(record.get('body', '{}'))
            name = body["name"]
        except (json.JSONDecodeError, KeyError, TypeError):
            logger.error(f"Malformed reconcile message {message_id}. Discarding message.")
            malformed += 1
            continue

        logger.info(f"Reconciling {name} (message: {message_id})")
        try:
            result = worker.process(name)
        except Exception as e:
            # Let SQS redeliver; the pass persisted nothing partial
            logger.error(f"Reconcile of {name} failed: {type(e).__name__}: {e}")
            raise

        processed += 1
        if not result.done:
            requeued += 1

    return {"processed": processed, "malformed": malformed, "requeued": requeued}

import os
import sys
import time
import argparse
import logging

from botocore.exceptions import ClientError

from elevate.models.request import AccessRequest, RequestStatus
from elevate.adapters.state_store import RequestStore, StoreError, NotFoundError, AlreadyExistsError
from elevate.adapters.access_review import OracleError
from elevate.adapters.reconcile_queue import ReconcileQueue
from elevate.workflows.reconcile_worker import ReconcileWorker, build_reconciler, DEFAULT_POLICY_PATH
from elevate.ui.printer import print_request_status
from elevate.ui.json_logger import log_audit_event
from elevate.validators import admit, validate_duration, validate_request_name, CREATE

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_REJECTED = 2
EXIT_INFRA = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Elevate: Temporary Privilege Escalation")
    parser.add_argument("--requests-table", required=True, help="The DynamoDB table holding AccessRequests")
    parser.add_argument("--grants-table", required=True, help="The DynamoDB table holding role bindings")
    parser.add_argument("--policy", default=DEFAULT_POLICY_PATH, help="Path to the YAML access policy")
    parser.add_argument("--queue-url", default=os.environ.get("RECONCILE_QUEUE_URL"),
                        help="SQS queue that schedules follow-up passes (default: $RECONCILE_QUEUE_URL)")
    parser.add_argument("--debug", action="store_true", help="Enable verbose logging")

    sub = parser.add_subparsers(dest="command", required=True)

    submit = sub.add_parser("submit", help="Create a new SudoRequest")
    submit.add_argument("name", help="Unique name for the request")
    submit.add_argument("--user", required=True, help="The user to elevate")
    submit.add_argument("--role", required=True, help="The role to grant")
    submit.add_argument("--reason", default="", help="Why the escalation is needed")
    submit.add_argument("--minutes", type=float, help="Requested duration in minutes (policy default if omitted)")
    submit.add_argument("--caller", required=True, help="Identity submitting the request")
    submit.add_argument("--no-reconcile", action="store_true", help="Only store the request")

    reconcile = sub.add_parser("reconcile", help="Run one reconcile pass")
    reconcile.add_argument("name", help="Request name")

    status = sub.add_parser("status", help="Show a request")
    status.add_argument("name", help="Request name")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    # Validate inputs immediately (Fail Fast)
    try:
        args.name = validate_request_name(args.name)
        if getattr(args, "minutes", None) is not None:
            args.minutes = validate_duration(args.minutes)
        runs_pass = args.command == "reconcile" or (args.command == "submit" and not args.no_reconcile)
        if runs_pass and not args.queue_url:
            raise ValueError("--queue-url (or RECONCILE_QUEUE_URL) is required so the grant is revoked at expiry")
    except ValueError as e:
        parser.error(str(e))

    log_level = logging.DEBUG if args.debug else logging.INFO
    logging.basicConfig(level=log_level, format='%(asctime)s - %(levelname)s - %(message)s')
    logger = logging.getLogger("elevate")

    try:
        logger.info(f"Initializing reconciler (requests: {args.requests_table}, grants: {args.grants_table})...")
        workflow = build_reconciler(args.requests_table, args.grants_table, args.policy)
        store: RequestStore = workflow.requests

        if args.command == "submit":
            req = AccessRequest(
                name=args.name,
                principal=args.user,
                target_role=args.role,
                reason=args.reason,
                requested_expiry=time.time() + args.minutes * 60 if args.minutes is not None else None,
            )
            verdict = admit(req, args.caller, CREATE)
            if not verdict.allowed:
                logger.error(f"Request rejected: {verdict.reason}")
                sys.exit(EXIT_REJECTED)

            store.create(req)
            logger.info(f"✅ Stored request {req.name}")
            if args.no_reconcile:
                print_request_status(req)
                sys.exit(EXIT_OK)

        if args.command in ("submit", "reconcile"):
            # Through the worker, so the follow-up pass at expiry gets scheduled
            worker = ReconcileWorker(workflow, ReconcileQueue(args.queue_url))
            result = worker.process(args.name)
            req = store.get(args.name)
            logfile = log_audit_event(req, result)
            print_request_status(req, result, artifact_path=logfile)
            if req.status in (RequestStatus.DENIED, RequestStatus.ERROR):
                sys.exit(EXIT_REJECTED)
            sys.exit(EXIT_OK)

        print_request_status(store.get(args.name))
        sys.exit(EXIT_OK)

    except NotFoundError as e:
        logger.error(str(e))
        sys.exit(EXIT_REJECTED)
    except AlreadyExistsError as e:
        logger.error(str(e))
        sys.exit(EXIT_REJECTED)
    except (StoreError, OracleError, ClientError) as e:
        logger.error(f"Infrastructure Error: {e}")
        sys.exit(EXIT_INFRA)
    except Exception:
        logger.exception("Unexpected System Failure")
        sys.exit(EXIT_UNEXPECTED)


if __name__ == "__main__":
    main()

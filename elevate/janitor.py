import sys
import os
import argparse
import logging

from elevate.adapters.binding_store import BindingStore
from elevate.adapters.state_store import RequestStore, NotFoundError, StoreError
from elevate.core.grants import GrantManager

# Configure logging to work in both CLI and Lambda
logger = logging.getLogger()
if not logger.handlers:
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')


def is_orphan(grant, requests: RequestStore) -> bool:
    """
    A binding is orphaned when its owning request is gone, or when a request
    with the same name now exists under a different uid (it was recreated).
    Bindings with no owner reference are not ours and are left alone.
    """
    if grant.owner is None:
        return False
    try:
        owner = requests.get(grant.owner.name)
    except NotFoundError:
        return True
    return owner.uid != grant.owner.uid


def collect_orphans(requests: RequestStore, bindings: BindingStore, dry_run: bool = False) -> dict:
    """
    Core logic separated from the entry point so it can be called by CLI or Lambda.
    Deletes every binding whose owning AccessRequest no longer exists.
    """
    logger.info("🧹 Janitor starting up...")
    grants = GrantManager(bindings)

    deleted_count = 0
    error_count = 0

    all_grants = bindings.list_grants()
    orphans = []
    for grant in all_grants:
        try:
            if is_orphan(grant, requests):
                orphans.append(grant)
        except StoreError as e:
            # Owner unknown, so keep the binding and move on
            logger.error(f"❌ Could not look up owner of {grant.name}: {e}")
            error_count += 1

    if not orphans and error_count == 0:
        logger.info(f"✨ No orphaned bindings among {len(all_grants)}. Clean system.")
        return {"status": "success", "deleted": 0, "errors": 0}

    logger.info(f"Found {len(orphans)} orphaned bindings.")

    for grant in orphans:
        logger.info(f"Processing orphan: {grant.name} (User: {grant.subject}, Role: {grant.role_ref}, Owner: {grant.owner.name})")

        if dry_run:
            logger.info("DRY RUN: Skipping delete.")
            continue

        try:
            grants.delete_grant(grant.name)
            logger.info(f"✅ Deleted {grant.name}")
            deleted_count += 1
        except Exception as e:
            logger.error(f"❌ Failed to delete {grant.name}: {e}")
            error_count += 1

    logger.info(f"Janitor Run Complete. Deleted: {deleted_count}, Errors: {error_count}")

    return {
        "status": "success" if error_count == 0 else "partial_failure",
        "deleted": deleted_count,
        "errors": error_count
    }


def run_collection(requests_table: str, grants_table: str, dry_run: bool = False) -> dict:
    try:
        requests = RequestStore(table_name=requests_table)
        bindings = BindingStore(table_name=grants_table)
    except Exception as e:
        logger.error(f"Failed to initialize adapters: {e}")
        return {"status": "error", "message": str(e), "deleted": 0, "errors": 1}

    return collect_orphans(requests, bindings, dry_run=dry_run)


# --- ENTRY POINT 1: AWS LAMBDA ---
def lambda_handler(event, context):
    """
    Scheduled by EventBridge. Configuration comes from Environment Variables.
    """
    requests_table = os.environ.get("REQUESTS_TABLE")
    grants_table = os.environ.get("GRANTS_TABLE")
    if not requests_table or not grants_table:
        raise ValueError("CRITICAL: REQUESTS_TABLE and GRANTS_TABLE environment variables must be set.")

    return run_collection(requests_table, grants_table, dry_run=False)


def main():
    parser = argparse.ArgumentParser(description="Elevate: The Janitor (orphaned binding collector)")
    parser.add_argument("--requests-table", required=True, help="The DynamoDB table holding AccessRequests")
    parser.add_argument("--grants-table", required=True, help="The DynamoDB table holding role bindings")
    parser.add_argument("--dry-run", action="store_true", help="Scan only, do not delete")
    parser.add_argument("--debug", action="store_true", help="Enable verbose logging")

    args = parser.parse_args()

    if args.debug:
        logger.setLevel(logging.DEBUG)

    result = run_collection(args.requests_table, args.grants_table, args.dry_run)

    # Map result to exit code for CI/CD
    if result["errors"] > 0:
        sys.exit(1)
    sys.exit(0)


# --- ENTRY POINT 2: LOCAL CLI ---
if __name__ == "__main__":
    main()

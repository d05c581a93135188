import boto3
import logging
import time
from decimal import Decimal
from typing import Optional
from botocore.exceptions import ClientError
from elevate.models.request import AccessRequest, RequestStatus

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when DynamoDB is unreachable or rejects a call for an unexpected reason."""
    pass


class NotFoundError(StoreError):
    """The object does not exist. A normal outcome for lookups."""
    pass


class AlreadyExistsError(StoreError):
    """An object with the same key already exists."""
    pass


def ignore_not_found(err: Exception) -> Optional[Exception]:
    """Returns None for NotFoundError, the error otherwise."""
    if isinstance(err, NotFoundError):
        return None
    return err


def ignore_already_exists(err: Exception) -> Optional[Exception]:
    """Returns None for AlreadyExistsError, the error otherwise."""
    if isinstance(err, AlreadyExistsError):
        return None
    return err


def error_code(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Code", "")


def to_decimal(val: float) -> Decimal:
    """DynamoDB requires Decimal for numbers, not Python floats."""
    return Decimal(str(val))


class RequestStore:
    """
    The 'Memory' of the system.
    Adapter for the DynamoDB table holding AccessRequests, keyed by request name.
    """
    def __init__(self, table_name: str, region_name: str = "us-east-1", table=None):
        # Dependency Injection allows us to pass a fake table during testing
        if table is None:
            table = boto3.resource("dynamodb", region_name=region_name).Table(table_name)
        self.table = table
        self.table_name = table_name

    def _to_item(self, request: AccessRequest) -> dict:
        item = {
            "name": request.name,
            "uid": request.uid,
            "principal": request.principal,
            "target_role": request.target_role,
            "reason": request.reason,
            "created_at": to_decimal(request.created_at),
            "status_reason": request.status_reason,
            "grant_ref": request.grant_ref,
        }
        # Optional attributes are omitted rather than stored as NULL
        if request.requested_expiry is not None:
            item["requested_expiry"] = to_decimal(request.requested_expiry)
        if request.status is not None:
            item["status"] = request.status.value
        if request.effective_expiry is not None:
            item["effective_expiry"] = to_decimal(request.effective_expiry)
        return item

    def _from_item(self, item: dict) -> AccessRequest:
        requested = item.get("requested_expiry")
        effective = item.get("effective_expiry")
        status = item.get("status")
        return AccessRequest(
            name=item["name"],
            uid=item.get("uid", ""),
            principal=item.get("principal", ""),
            target_role=item.get("target_role", ""),
            reason=item.get("reason", ""),
            requested_expiry=float(requested) if requested is not None else None,
            created_at=float(item.get("created_at", 0)),
            status=RequestStatus(status) if status else None,
            status_reason=item.get("status_reason", ""),
            grant_ref=item.get("grant_ref", ""),
            effective_expiry=float(effective) if effective is not None else None,
        )

    def get(self, name: str) -> AccessRequest:
        """
        Fetches a request by name.
        Raises NotFoundError if it does not exist (e.g. it was deleted).
        """
        try:
            response = self.table.get_item(Key={"name": name}, ConsistentRead=True)
        except ClientError as e:
            raise StoreError(f"Failed to read request {name}: {e}")

        item = response.get("Item")
        if not item:
            raise NotFoundError(f"AccessRequest {name} not found")
        return self._from_item(item)

    def create(self, request: AccessRequest, now: Optional[float] = None) -> AccessRequest:
        """
        Writes a new request. The store owns identity: it stamps uid and created_at.
        Refuses to overwrite an existing request with the same name.
        """
        request.uid = request.uid or AccessRequest.create_uid()
        request.created_at = now if now is not None else time.time()

        try:
            self.table.put_item(
                Item=self._to_item(request),
                ConditionExpression="attribute_not_exists(#n)",
                ExpressionAttributeNames={"#n": "name"},
            )
        except ClientError as e:
            if error_code(e) == "ConditionalCheckFailedException":
                raise AlreadyExistsError(f"AccessRequest {request.name} already exists")
            raise StoreError(f"Failed to save request {request.name}: {e}")

        logger.info(f"Stored AccessRequest {request.name} (uid: {request.uid})")
        return request

    def update_status(self, request: AccessRequest):
        """
        Persists the observed state of a request: status, reason, grant and expiry.
        The user-supplied fields of the item are never touched here.
        """
        names = {"#n": "name", "#s": "status"}
        values = {
            ":reason": request.status_reason,
            ":grant": request.grant_ref,
        }
        sets = ["status_reason = :reason", "grant_ref = :grant"]
        removes = []

        if request.status is not None:
            sets.append("#s = :status")
            values[":status"] = request.status.value
        else:
            removes.append("#s")

        if request.effective_expiry is not None:
            sets.append("effective_expiry = :expiry")
            values[":expiry"] = to_decimal(request.effective_expiry)

        expression = "SET " + ", ".join(sets)
        if removes:
            expression += " REMOVE " + ", ".join(removes)

        try:
            self.table.update_item(
                Key={"name": request.name},
                UpdateExpression=expression,
                ConditionExpression="attribute_exists(#n)",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )
        except ClientError as e:
            if error_code(e) == "ConditionalCheckFailedException":
                raise NotFoundError(f"AccessRequest {request.name} not found")
            raise StoreError(f"Failed to update status for {request.name}: {e}")

    def delete(self, name: str):
        try:
            self.table.delete_item(
                Key={"name": name},
                ConditionExpression="attribute_exists(#n)",
                ExpressionAttributeNames={"#n": "name"},
            )
        except ClientError as e:
            if error_code(e) == "ConditionalCheckFailedException":
                raise NotFoundError(f"AccessRequest {name} not found")
            raise StoreError(f"Failed to delete request {name}: {e}")

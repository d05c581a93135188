import boto3
import logging
import time
from typing import List, Optional
from botocore.exceptions import ClientError
from elevate.models.request import Grant, OwnerReference
from elevate.adapters.state_store import (
    StoreError,
    NotFoundError,
    AlreadyExistsError,
    error_code,
    to_decimal,
)


class BindingStore:
    """
    Adapter for the DynamoDB table of role bindings (grants).
    A binding is what actually confers the elevated role on a user,
    so every write is logged.
    """
    def __init__(self, table_name: str, region_name: str = "us-east-1", table=None):
        if table is None:
            table = boto3.resource("dynamodb", region_name=region_name).Table(table_name)
        self.table = table
        self.table_name = table_name
        self.logger = logging.getLogger("elevate.bindings")

    def _to_item(self, grant: Grant) -> dict:
        item = {
            "name": grant.name,
            "subject": grant.subject,
            "role_ref": grant.role_ref,
            "created_at": to_decimal(grant.created_at),
        }
        if grant.owner:
            item["owner_kind"] = grant.owner.kind
            item["owner_name"] = grant.owner.name
            item["owner_uid"] = grant.owner.uid
            item["owner_controller"] = grant.owner.controller
        return item

    def _from_item(self, item: dict) -> Grant:
        owner = None
        if item.get("owner_uid"):
            owner = OwnerReference(
                kind=item.get("owner_kind", ""),
                name=item.get("owner_name", ""),
                uid=item["owner_uid"],
                controller=bool(item.get("owner_controller", True)),
            )
        return Grant(
            name=item["name"],
            subject=item.get("subject", ""),
            role_ref=item.get("role_ref", ""),
            owner=owner,
            created_at=float(item.get("created_at", 0)),
        )

    # --- READ METHODS ---

    def get(self, name: str) -> Grant:
        try:
            response = self.table.get_item(Key={"name": name}, ConsistentRead=True)
        except ClientError as e:
            raise StoreError(f"Failed to read binding {name}: {e}")

        item = response.get("Item")
        if not item:
            raise NotFoundError(f"Binding {name} not found")
        return self._from_item(item)

    def list_grants(self, owner_uid: Optional[str] = None) -> List[Grant]:
        """
        Scans the whole table, following pagination.
        With `owner_uid`, only bindings owned by that request are returned.
        """
        kwargs = {}
        if owner_uid:
            kwargs["FilterExpression"] = "owner_uid = :uid"
            kwargs["ExpressionAttributeValues"] = {":uid": owner_uid}

        items = []
        try:
            while True:
                resp = self.table.scan(**kwargs)
                items.extend(resp.get("Items", []))
                last_key = resp.get("LastEvaluatedKey")
                if not last_key:
                    break
                kwargs["ExclusiveStartKey"] = last_key
        except ClientError as e:
            raise StoreError(f"Failed to list bindings: {e}")

        return [self._from_item(item) for item in items]

    def list_by_owner(self, owner_uid: str) -> List[Grant]:
        return self.list_grants(owner_uid=owner_uid)

    # --- WRITE METHODS ---

    def create(self, grant: Grant) -> Grant:
        """
        PROVISIONING: writes the binding, refusing to overwrite an existing one.
        """
        if not grant.created_at:
            grant.created_at = time.time()
        try:
            self.table.put_item(
                Item=self._to_item(grant),
                ConditionExpression="attribute_not_exists(#n)",
                ExpressionAttributeNames={"#n": "name"},
            )
        except ClientError as e:
            if error_code(e) == "ConditionalCheckFailedException":
                raise AlreadyExistsError(f"Binding {grant.name} already exists")
            raise StoreError(f"Failed to create binding {grant.name}: {e}")

        self.logger.info(f"Granted role {grant.role_ref} to {grant.subject} ({grant.name})")
        return grant

    def delete(self, name: str):
        """
        REVOCATION: removes the binding. Raises NotFoundError if it is already gone.
        """
        try:
            self.table.delete_item(
                Key={"name": name},
                ConditionExpression="attribute_exists(#n)",
                ExpressionAttributeNames={"#n": "name"},
            )
        except ClientError as e:
            if error_code(e) == "ConditionalCheckFailedException":
                raise NotFoundError(f"Binding {name} not found")
            raise StoreError(f"Failed to delete binding {name}: {e}")

        self.logger.info(f"Revoked binding {name}")

"""
Shared fakes: an in-memory stand-in for a boto3 DynamoDB Table and an
authorization oracle with scripted answers.
"""
import os
import sys

import pytest
from botocore.exceptions import ClientError

# Add repo root to import path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from elevate.adapters.access_review import AccessDecisionClient
from elevate.adapters.binding_store import BindingStore
from elevate.adapters.state_store import RequestStore
from elevate.core.clock import FixedClock
from elevate.core.grants import GrantManager
from elevate.core.resolver import StatusResolver
from elevate.core.workflow import ReconcileWorkflow

# 2025-10-09T08:53:20Z
CREATED_AT = 1760000000.0


def client_error(code: str, operation: str = "PutItem") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeTable:
    """
    Understands exactly the expressions the stores send:
    attribute_(not_)exists conditions, SET/REMOVE updates and an owner_uid filter.
    """
    def __init__(self, page_size: int = 100):
        self.items = {}
        self.page_size = page_size
        self.fail_with = None
        self.calls = []

    def _check_failure(self, op):
        self.calls.append(op)
        if self.fail_with is not None:
            raise self.fail_with

    def get_item(self, Key, ConsistentRead=False):  # noqa: N803 - boto3 shape
        self._check_failure("get_item")
        item = self.items.get(Key["name"])
        return {"Item": dict(item)} if item else {}

    def put_item(self, Item, ConditionExpression=None, ExpressionAttributeNames=None):  # noqa: N803
        self._check_failure("put_item")
        if ConditionExpression and Item["name"] in self.items:
            raise client_error("ConditionalCheckFailedException", "PutItem")
        self.items[Item["name"]] = dict(Item)

    def update_item(self, Key, UpdateExpression, ConditionExpression,  # noqa: N803
                    ExpressionAttributeNames, ExpressionAttributeValues):
        self._check_failure("update_item")
        item = self.items.get(Key["name"])
        if item is None:
            raise client_error("ConditionalCheckFailedException", "UpdateItem")

        set_part, _, remove_part = UpdateExpression.partition(" REMOVE ")
        for assignment in set_part[len("SET "):].split(", "):
            attr, value = assignment.split(" = ")
            item[ExpressionAttributeNames.get(attr, attr)] = ExpressionAttributeValues[value]
        if remove_part:
            for attr in remove_part.split(", "):
                item.pop(ExpressionAttributeNames.get(attr, attr), None)

    def delete_item(self, Key, ConditionExpression=None, ExpressionAttributeNames=None):  # noqa: N803
        self._check_failure("delete_item")
        if Key["name"] not in self.items:
            raise client_error("ConditionalCheckFailedException", "DeleteItem")
        del self.items[Key["name"]]

    def scan(self, FilterExpression=None, ExpressionAttributeValues=None, ExclusiveStartKey=None):  # noqa: N803
        self._check_failure("scan")
        names = sorted(self.items)
        start = names.index(ExclusiveStartKey["name"]) + 1 if ExclusiveStartKey else 0
        page = names[start:start + self.page_size]

        items = [dict(self.items[n]) for n in page]
        if FilterExpression:
            items = [i for i in items if i.get("owner_uid") == ExpressionAttributeValues[":uid"]]

        resp = {"Items": items}
        if start + self.page_size < len(names):
            resp["LastEvaluatedKey"] = {"name": page[-1]}
        return resp


class FakeOracle:
    def __init__(self, allowed=True, denied=False, reason=""):
        self.answer = {"allowed": allowed, "denied": denied, "reason": reason}
        self.calls = []

    def review(self, user, verb, resource_kind, resource_name):
        self.calls.append((user, verb, resource_kind, resource_name))
        return dict(self.answer)


@pytest.fixture
def clock():
    return FixedClock(CREATED_AT)


@pytest.fixture
def request_table():
    return FakeTable()


@pytest.fixture
def grant_table():
    return FakeTable()


@pytest.fixture
def requests(request_table):
    return RequestStore("requests", table=request_table)


@pytest.fixture
def bindings(grant_table):
    return BindingStore("grants", table=grant_table)


@pytest.fixture
def oracle():
    return FakeOracle()


@pytest.fixture
def workflow(requests, bindings, oracle, clock):
    return ReconcileWorkflow(
        requests=requests,
        grants=GrantManager(bindings),
        access=AccessDecisionClient(oracle),
        resolver=StatusResolver(clock),
        clock=clock,
    )

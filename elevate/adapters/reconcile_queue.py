import boto3
import json
import logging
import math
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

# SQS refuses DelaySeconds above 15 minutes
MAX_DELAY_SECONDS = 900


class ReconcileQueue:
    """
    The 'Metal Ticket Rail'.
    Every message names one AccessRequest that needs a reconcile pass.
    """
    def __init__(self, queue_url: str, sqs_client=None):
        if not queue_url:
            raise ValueError("A reconcile queue URL is required.")
        self.queue_url = queue_url
        self.sqs = sqs_client or boto3.client("sqs")

    def __repr__(self):
        return f"ReconcileQueue(queue_url={self.queue_url})"

    def enqueue(self, name: str, delay_seconds: float = 0):
        """
        Schedules a pass for `name`. Delays beyond the SQS limit are clamped;
        the pass that runs early simply schedules itself again.
        """
        delay = max(0, min(MAX_DELAY_SECONDS, int(math.ceil(delay_seconds))))
        try:
            self.sqs.send_message(
                QueueUrl=self.queue_url,
                MessageBody=json.dumps({"name": name}),
                DelaySeconds=delay,
                MessageAttributes={
                    'request_name': {'StringValue': name, 'DataType': 'String'},
                    'request_type': {'StringValue': 'reconcile', 'DataType': 'String'},
                }
            )
        except ClientError as e:
            logger.error(f"Failed to enqueue reconcile for {name}: {e}")
            raise

        logger.debug(f"Enqueued reconcile for {name} (delay: {delay}s)")
        return delay

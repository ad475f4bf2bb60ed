"""
DynamoDB Processed-Session Store

Optional record of checkout sessions that have already been reconciled
into Wix, so a redelivered webhook can be acknowledged without touching the
directory again.

Table Structure:
- Primary Key: pk (partition key) - "processed_session#<session id>"
- Sort Key: sk - always "value"
- Attributes:
  - value: JSON with the reconciliation outcome
  - ttl: expiry timestamp, enforced by DynamoDB TTL
  - created_at: ISO timestamp
"""

import json
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from contact_sync.config import settings
from contact_sync.utils.logging_config import get_logger

logger = get_logger(__name__)

NAMESPACE = "processed_session"


class ProcessedSessionStore:
    """
    DynamoDB-backed processed-session markers.

    Read and write failures are logged and reported as "not processed" /
    "not marked"; the marker is an optimisation on top of label-presence
    idempotency, never a reason to fail a webhook.
    """

    def __init__(
        self,
        table_name: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
        enabled: Optional[bool] = None,
    ):
        self.table_name = table_name or settings.dynamodb_table_name
        self.ttl_seconds = ttl_seconds or settings.processed_session_ttl
        self.enabled = settings.processed_session_tracking if enabled is None else enabled
        self.table = None

    def _get_table(self):
        if self.table is None:
            # endpoint_url is for LocalStack during local development only
            endpoint_url = settings.aws_endpoint_url if not settings.is_lambda else None
            resource = boto3.resource(
                "dynamodb",
                region_name=settings.aws_region,
                endpoint_url=endpoint_url,
            )
            self.table = resource.Table(self.table_name)
        return self.table

    @staticmethod
    def _key(session_id: str) -> Dict[str, str]:
        return {"pk": f"{NAMESPACE}#{session_id}", "sk": "value"}

    async def is_processed(self, session_id: str) -> bool:
        """Check whether an unexpired marker exists for the session"""
        if not self.enabled:
            return False

        try:
            response = self._get_table().get_item(Key=self._key(session_id))
        except (ClientError, BotoCoreError) as e:
            logger.error(
                f"Failed to read processed-session marker: {e}",
                extra={"session_id": session_id},
            )
            return False

        item = response.get("Item")
        if not item:
            return False

        # DynamoDB TTL deletion can lag behind expiry
        if "ttl" in item and int(time.time()) > int(item["ttl"]):
            logger.debug("Processed-session marker expired", extra={"session_id": session_id})
            return False

        return True

    async def mark_processed(self, session_id: str, outcome: Dict[str, Any]) -> bool:
        """
        Record that the session has been reconciled.

        Returns:
            True if the marker was written
        """
        if not self.enabled:
            return False

        item = {
            **self._key(session_id),
            "value": json.dumps(outcome),
            "value_type": "json",
            "created_at": datetime.now(timezone.utc).isoformat(),
            "ttl": int(time.time()) + self.ttl_seconds,
        }

        try:
            self._get_table().put_item(Item=item)
        except (ClientError, BotoCoreError) as e:
            logger.error(
                f"Failed to write processed-session marker: {e}",
                extra={"session_id": session_id},
            )
            return False

        logger.debug("Processed-session marker written", extra={"session_id": session_id})
        return True


# Global processed-session store instance
processed_session_store = ProcessedSessionStore()

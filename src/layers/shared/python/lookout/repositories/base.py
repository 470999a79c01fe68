"""Base repository class for DynamoDB operations."""

import os
from typing import Any, Generic, TypeVar

import boto3
import structlog
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from lookout.models.base import BaseModel

logger = structlog.get_logger()

T = TypeVar("T", bound=BaseModel)

# Upper bound on pages fetched by query_all, so a runaway range cannot
# hold a Lambda invocation forever.
MAX_QUERY_PAGES = 200

# Time-ordered sort keys are "{timestamp}#{id}"; "~" sorts after every ULID
# character, so "{end}#~" closes a range inclusively.
SK_RANGE_END_SUFFIX = "#~"


class BaseRepository(Generic[T]):
    """Base repository for DynamoDB single-table design.

    Analytics rows are append-mostly, so this only covers get/put and
    key-condition queries; there is no optimistic locking.
    """

    def __init__(
        self,
        model_class: type[T],
        table_name: str | None = None,
    ):
        """Initialize repository.

        Args:
            model_class: The Pydantic model class for this repository.
            table_name: DynamoDB table name. Defaults to TABLE_NAME env var.
        """
        self.model_class = model_class
        self.table_name = table_name or os.environ.get("TABLE_NAME", "lookout-dev")
        self._dynamodb = None
        self._table = None

    @property
    def dynamodb(self):
        """Get DynamoDB resource (lazy initialization)."""
        if self._dynamodb is None:
            self._dynamodb = boto3.resource("dynamodb")
        return self._dynamodb

    @property
    def table(self):
        """Get DynamoDB table (lazy initialization)."""
        if self._table is None:
            self._table = self.dynamodb.Table(self.table_name)
        return self._table

    def _build_key(self, pk: str, sk: str) -> dict[str, str]:
        """Build key dictionary for DynamoDB operations."""
        return {"PK": pk, "SK": sk}

    def get(self, pk: str, sk: str) -> T | None:
        """Get an item by its primary key.

        Args:
            pk: Partition key value.
            sk: Sort key value.

        Returns:
            Model instance or None if not found.
        """
        try:
            response = self.table.get_item(Key=self._build_key(pk, sk))
            item = response.get("Item")

            if not item:
                return None

            return self.model_class.from_dynamodb(item)

        except ClientError as e:
            logger.error("DynamoDB get_item failed", error=str(e), pk=pk, sk=sk)
            raise

    def put(self, item: T) -> T:
        """Put an item into DynamoDB, including its GSI1 keys if any.

        Args:
            item: Model instance to save.

        Returns:
            The saved model instance.
        """
        try:
            db_item = item.to_dynamodb()
            db_item.update(item.get_keys())

            gsi_keys = item.get_gsi1_keys()
            if gsi_keys:
                db_item.update(gsi_keys)

            self.table.put_item(Item=db_item)

            logger.debug(
                "Item saved",
                pk=db_item["PK"],
                sk=db_item["SK"],
                model=self.model_class.__name__,
            )

            return item

        except ClientError as e:
            logger.error("DynamoDB put_item failed", error=str(e))
            raise

    def query(
        self,
        pk: str,
        sk_prefix: str | None = None,
        index_name: str | None = None,
        limit: int | None = None,
        scan_forward: bool = True,
        last_key: dict | None = None,
    ) -> tuple[list[T], dict | None]:
        """Query one page of items by partition key.

        Args:
            pk: Partition key value.
            sk_prefix: Sort key prefix for begins_with condition.
            index_name: Optional GSI name ("GSI1").
            limit: Maximum items to return.
            scan_forward: Sort direction (True = ascending).
            last_key: Last evaluated key for pagination.

        Returns:
            Tuple of (items, last_evaluated_key).
        """
        pk_name, sk_name = ("GSI1PK", "GSI1SK") if index_name == "GSI1" else ("PK", "SK")
        condition = Key(pk_name).eq(pk)
        if sk_prefix:
            condition = condition & Key(sk_name).begins_with(sk_prefix)
        return self._query(condition, pk, index_name, limit, scan_forward, last_key)

    def query_between(
        self,
        pk: str,
        sk_start: str,
        sk_end: str,
        limit: int | None = None,
        scan_forward: bool = True,
        last_key: dict | None = None,
    ) -> tuple[list[T], dict | None]:
        """Query one page of items whose sort key lies in [sk_start, sk_end]."""
        condition = Key("PK").eq(pk) & Key("SK").between(sk_start, sk_end)
        return self._query(condition, pk, None, limit, scan_forward, last_key)

    def query_all_between(self, pk: str, sk_start: str, sk_end: str) -> list[T]:
        """Query every item in a sort-key range, following pagination."""
        items: list[T] = []
        last_key = None
        for _ in range(MAX_QUERY_PAGES):
            page, last_key = self.query_between(pk, sk_start, sk_end, last_key=last_key)
            items.extend(page)
            if not last_key:
                return items

        logger.warning("Query page limit reached", pk=pk, items=len(items))
        return items

    def _query(
        self,
        condition: Any,
        pk: str,
        index_name: str | None,
        limit: int | None,
        scan_forward: bool,
        last_key: dict | None,
    ) -> tuple[list[T], dict | None]:
        try:
            kwargs: dict[str, Any] = {
                "KeyConditionExpression": condition,
                "ScanIndexForward": scan_forward,
            }
            if index_name:
                kwargs["IndexName"] = index_name
            if limit:
                kwargs["Limit"] = limit
            if last_key:
                kwargs["ExclusiveStartKey"] = last_key

            response = self.table.query(**kwargs)

            items = [self.model_class.from_dynamodb(item) for item in response.get("Items", [])]
            return items, response.get("LastEvaluatedKey")

        except ClientError as e:
            logger.error("DynamoDB query failed", error=str(e), pk=pk)
            raise

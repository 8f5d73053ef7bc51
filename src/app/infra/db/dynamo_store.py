from __future__ import annotations

import logging
import time
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional, TypeVar

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.config import Config
from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from src.app.config import settings
from src.app.domain.errors import (
    ConflictError,
    DatabaseError,
    InternalError,
    NotFoundError,
    RateLimitedError,
    RatingServiceError,
    ValidationError,
)
from src.app.infra import metrics
from src.app.infra.db.base import Item, Page, Precondition, RecordKey, RecordStore
from src.app.infra.db.keys import GSI1
from src.app.infra.db.paging import decode_page_token, encode_page_token
from src.app.infra.db.retry import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

THROTTLING_ERROR_CODES = frozenset({
    "ThrottlingException",
    "ProvisionedThroughputExceededException",
    "RequestLimitExceeded",
})
TRANSIENT_ERROR_CODES = THROTTLING_ERROR_CODES | {"ServiceUnavailable", "InternalServerError"}
TRANSIENT_NETWORK_ERRORS = (
    EndpointConnectionError,
    ConnectTimeoutError,
    ReadTimeoutError,
    ConnectionClosedError,
)

THROTTLE_RETRY_AFTER_SECONDS = 30
BATCH_READ_CHUNK = 100
BATCH_WRITE_CHUNK = 25

INDEX_KEY_ATTRIBUTES = {
    None: ("PK", "SK"),
    GSI1: ("GSI1PK", "GSI1SK"),
}


class UnprocessedItemsError(Exception):
    """Raised internally when a batch call leaves work unprocessed."""

    def __init__(self, remaining: int):
        super().__init__(f"{remaining} batch entries left unprocessed")
        self.remaining = remaining


def _error_code(error: BaseException) -> str:
    if isinstance(error, ClientError):
        return str(error.response.get("Error", {}).get("Code", ""))
    return ""


def is_transient_error(error: BaseException) -> bool:
    if isinstance(error, (UnprocessedItemsError, *TRANSIENT_NETWORK_ERRORS)):
        return True
    return _error_code(error) in TRANSIENT_ERROR_CODES


def _to_dynamo(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {key: _to_dynamo(inner) for key, inner in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_dynamo(inner) for inner in value]
    return value


def _from_dynamo(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {key: _from_dynamo(inner) for key, inner in value.items()}
    if isinstance(value, list):
        return [_from_dynamo(inner) for inner in value]
    return value


def _chunks(entries: list[T], size: int) -> Iterable[list[T]]:
    for start in range(0, len(entries), size):
        yield entries[start:start + size]


def _condition_expression(
    precondition: Optional[Precondition],
) -> tuple[Optional[str], dict[str, str], dict[str, Any]]:
    if precondition is None:
        return None, {}, {}

    clauses: list[str] = []
    names: dict[str, str] = {}
    values: dict[str, Any] = {}

    if precondition.must_exist:
        clauses.append("attribute_exists(PK)")
    if precondition.must_not_exist:
        clauses.append("attribute_not_exists(PK)")
    for index, (attribute, expected) in enumerate(precondition.equals.items()):
        names[f"#ceq{index}"] = attribute
        values[f":ceq{index}"] = _to_dynamo(expected)
        clauses.append(f"#ceq{index} = :ceq{index}")
    for index, (attribute, rejected) in enumerate(precondition.not_equals.items()):
        names[f"#cne{index}"] = attribute
        values[f":cne{index}"] = _to_dynamo(rejected)
        clauses.append(f"(attribute_not_exists(#cne{index}) OR #cne{index} <> :cne{index})")

    return (" AND ".join(clauses) or None), names, values


def default_retry_policy() -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.DB_RETRY_MAX_ATTEMPTS,
        base_delay=settings.DB_RETRY_BASE_DELAY_SECONDS,
        max_delay=settings.DB_RETRY_MAX_DELAY_SECONDS,
        is_retryable=is_transient_error,
    )


def _create_dynamodb_resource() -> Any:
    return boto3.resource(
        "dynamodb",
        region_name=settings.AWS_REGION,
        endpoint_url=settings.DYNAMODB_ENDPOINT_URL,
        # retries are owned by RetryPolicy
        config=Config(retries={"max_attempts": 1, "mode": "standard"}),
    )


class DynamoRecordStore(RecordStore):
    def __init__(
        self,
        table_name: Optional[str] = None,
        resource: Any = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.table_name = table_name or settings.DYNAMODB_TABLE
        self._resource = resource or _create_dynamodb_resource()
        self._table = self._resource.Table(self.table_name)
        self._retry = retry_policy or default_retry_policy()
        logger.info("DynamoRecordStore initialized: table=%s", self.table_name)

    def get(self, key: RecordKey) -> Optional[Item]:
        response = self._execute("get", lambda: self._table.get_item(Key=key.as_dict()), key=key)
        item = response.get("Item")
        return _from_dynamo(item) if item else None

    def put(self, item: Item, precondition: Optional[Precondition] = None) -> None:
        request: dict[str, Any] = {"Item": _to_dynamo(item)}
        condition, names, values = _condition_expression(precondition)
        if condition:
            request["ConditionExpression"] = condition
        if names:
            request["ExpressionAttributeNames"] = names
        if values:
            request["ExpressionAttributeValues"] = values

        self._execute("put", lambda: self._table.put_item(**request), key=RecordKey.of(item))

    def conditional_update(
        self,
        key: RecordKey,
        changes: dict[str, Any],
        precondition: Optional[Precondition] = None,
    ) -> Item:
        if not changes:
            raise ValueError("conditional_update requires at least one change")

        condition, names, values = _condition_expression(precondition)
        assignments = []
        for index, (attribute, value) in enumerate(changes.items()):
            names[f"#u{index}"] = attribute
            values[f":u{index}"] = _to_dynamo(value)
            assignments.append(f"#u{index} = :u{index}")

        request: dict[str, Any] = {
            "Key": key.as_dict(),
            "UpdateExpression": "SET " + ", ".join(assignments),
            "ExpressionAttributeNames": names,
            "ExpressionAttributeValues": values,
            "ReturnValues": "ALL_NEW",
        }
        if condition:
            request["ConditionExpression"] = condition

        response = self._execute("update", lambda: self._table.update_item(**request), key=key)
        return _from_dynamo(response.get("Attributes") or {})

    def delete(self, key: RecordKey) -> None:
        self._execute("delete", lambda: self._table.delete_item(Key=key.as_dict()), key=key)

    def query_by_prefix(
        self,
        partition: str,
        sort_prefix: str,
        limit: Optional[int] = None,
        reverse: bool = False,
        page_token: Optional[str] = None,
        index_name: Optional[str] = None,
    ) -> Page:
        if index_name not in INDEX_KEY_ATTRIBUTES:
            raise ValidationError("index_name", f"Unknown index: {index_name}")

        pk_attribute, sk_attribute = INDEX_KEY_ATTRIBUTES[index_name]
        request: dict[str, Any] = {
            "KeyConditionExpression": Key(pk_attribute).eq(partition) & Key(sk_attribute).begins_with(sort_prefix),
            "ScanIndexForward": not reverse,
        }
        if index_name:
            request["IndexName"] = index_name
        if limit:
            request["Limit"] = limit
        start_key = decode_page_token(page_token)
        if start_key:
            request["ExclusiveStartKey"] = start_key

        response = self._execute(
            "query",
            lambda: self._table.query(**request),
            page_token=bool(start_key),
            index=index_name,
            partition=partition,
            limit=limit,
        )
        return self._to_page(response)

    def scan(
        self,
        filters: Optional[dict[str, Any]] = None,
        limit: Optional[int] = None,
        page_token: Optional[str] = None,
    ) -> Page:
        request: dict[str, Any] = {}
        if filters:
            condition = None
            for attribute, expected in filters.items():
                clause = Attr(attribute).eq(_to_dynamo(expected))
                condition = clause if condition is None else condition & clause
            request["FilterExpression"] = condition
        if limit:
            request["Limit"] = limit
        start_key = decode_page_token(page_token)
        if start_key:
            request["ExclusiveStartKey"] = start_key

        response = self._execute("scan", lambda: self._table.scan(**request), limit=limit, page_token=bool(start_key))
        return self._to_page(response)

    def batch_read(self, keys: Iterable[RecordKey]) -> list[Item]:
        unique_keys = list(dict.fromkeys(keys))
        found: list[Item] = []

        for chunk in _chunks(unique_keys, BATCH_READ_CHUNK):
            pending: list[dict[str, str]] = [key.as_dict() for key in chunk]

            def read_pending() -> None:
                nonlocal pending
                response = self._resource.batch_get_item(
                    RequestItems={self.table_name: {"Keys": pending}},
                )
                found.extend(
                    _from_dynamo(item)
                    for item in response.get("Responses", {}).get(self.table_name, [])
                )
                unprocessed = response.get("UnprocessedKeys", {}).get(self.table_name, {}).get("Keys", [])
                pending = list(unprocessed)
                if unprocessed:
                    raise UnprocessedItemsError(len(unprocessed))

            self._execute("batch_read", read_pending, keys=len(chunk))

        return found

    def batch_write(
        self,
        puts: Iterable[Item] = (),
        deletes: Iterable[RecordKey] = (),
    ) -> None:
        requests: list[dict[str, Any]] = [{"PutRequest": {"Item": _to_dynamo(item)}} for item in puts]
        requests.extend({"DeleteRequest": {"Key": key.as_dict()}} for key in deletes)

        for chunk in _chunks(requests, BATCH_WRITE_CHUNK):
            pending = list(chunk)

            def write_pending() -> None:
                nonlocal pending
                response = self._resource.batch_write_item(RequestItems={self.table_name: pending})
                unprocessed = response.get("UnprocessedItems", {}).get(self.table_name, [])
                pending = list(unprocessed)
                if unprocessed:
                    raise UnprocessedItemsError(len(unprocessed))

            self._execute("batch_write", write_pending, requests=len(chunk))

    def _to_page(self, response: dict[str, Any]) -> Page:
        items = [_from_dynamo(item) for item in response.get("Items", [])]
        last_key = response.get("LastEvaluatedKey")
        return Page(items=items, next_token=encode_page_token(_from_dynamo(last_key) if last_key else None))

    def _execute(self, operation: str, call: Callable[[], T], **context: Any) -> T:
        started = time.monotonic()
        try:
            result = self._retry.run(call, operation)
        except RatingServiceError:
            raise
        except Exception as error:
            duration_ms = (time.monotonic() - started) * 1000
            metrics.track_database_operation(operation, duration_ms, False)
            translated = self._translate(error, operation, bool(context.get("page_token")))
            logger.error(
                "DynamoDB %s failed: code=%s, error=%s, context=%s",
                operation, translated.code, error, context,
            )
            raise translated from error

        duration_ms = (time.monotonic() - started) * 1000
        metrics.track_database_operation(operation, duration_ms, True)
        logger.debug("DynamoDB %s completed: duration_ms=%.1f, context=%s", operation, duration_ms, context)
        return result

    def _translate(self, error: Exception, operation: str, from_page_token: bool = False) -> RatingServiceError:
        code = _error_code(error)

        if code == "ValidationException":
            # only a caller-supplied resume key can make a request we built malformed
            if from_page_token:
                return ValidationError("page_token", "Invalid page token")
            return InternalError("Invalid request sent to database", {"operation": operation})
        if code == "ResourceNotFoundException":
            return NotFoundError("Requested resource not found", {"operation": operation})
        if code == "ConditionalCheckFailedException":
            return ConflictError("Operation failed due to data conflict", {"operation": operation})
        if code in THROTTLING_ERROR_CODES:
            return RateLimitedError(operation, retry_after=THROTTLE_RETRY_AFTER_SECONDS)

        return DatabaseError(operation, code or type(error).__name__)

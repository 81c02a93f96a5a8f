"""
DynamoDB Table Gateway

This module is the table-service adapter of the storage layer: a thin wrapper
around a boto3 DynamoDB ``Table`` resource. The entity repository and the event
store never talk to boto3 directly; they compose the operations below.

The gateway focuses on:
- Creating boto3 resource and Table handles lazily
- Paginated scan/query iterators with opaque filter binding
- Conditional and transactional writes
- Table lifecycle (create, delete, add/remove secondary index)
- Re-classifying every botocore failure into the storage error taxonomy
"""

import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Set

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    PartialCredentialsError,
    ReadTimeoutError,
)

from ..config import StorageConfig
from ..exceptions import (
    ConcurrencyConflictError,
    DialError,
    QueryFailedError,
    SaveFailedError,
    StorageError,
)
from ..models import IndexDefinition
from ..namespace import namespace_from_context
from ..utils import bind_placeholders, build_projection_expression

logger = logging.getLogger(__name__)

READ_OPERATIONS = frozenset({'GetItem', 'Scan', 'Query', 'DescribeTable'})

_CONFLICT_CODES = frozenset({'ConditionalCheckFailedException', 'TransactionConflictException'})
_CONFLICT_REASONS = ('ConditionalCheckFailed', 'TransactionConflict')

_DIAL_CODES = frozenset({
    'UnrecognizedClientException', 'AccessDeniedException', 'InvalidEndpointException',
    'IncompleteSignatureException', 'InvalidSignatureException', 'MissingAuthenticationToken',
    'ExpiredTokenException', 'TokenRefreshRequiredException',
})

_RETRYABLE_CODES = frozenset({
    'ProvisionedThroughputExceededException', 'RequestLimitExceeded', 'ThrottlingException',
    'InternalServerError', 'ServiceUnavailable', 'ServiceUnavailableException',
    'TransactionInProgressException', 'RequestTimeoutException', 'LimitExceededException',
})


def _cancellation_reasons(error: ClientError) -> List[str]:
    reasons = error.response.get('CancellationReasons') or []
    codes = [reason.get('Code') for reason in reasons if reason.get('Code') not in (None, 'None')]
    if not codes:
        # Some endpoints only list the reasons in the message
        message = error.response.get('Error', {}).get('Message', '')
        codes = [code for code in _CONFLICT_REASONS if code in message]
    return codes


def _operation_failed(
    operation: str,
    message: str,
    original_error: Exception,
    namespace: str,
    retryable: bool = False,
    context: Optional[Dict[str, Any]] = None,
) -> StorageError:
    error_class = QueryFailedError if operation in READ_OPERATIONS else SaveFailedError
    return error_class(message, original_error, namespace, retryable=retryable, context=context)


def map_dynamodb_error(
    error: Exception,
    operation: str,
    table_name: str,
    namespace: Optional[str] = None,
    resource_id: Optional[str] = None,
) -> StorageError:
    """Map a botocore error to a storage exception.

    Reads (GetItem, Scan, Query, DescribeTable) that fail for generic reasons
    become QueryFailedError; every other operation becomes SaveFailedError.

    Args:
        error: The botocore ClientError or BotoCoreError
        operation: The operation that failed (e.g., "GetItem", "PutItem")
        table_name: The DynamoDB table name
        namespace: Namespace of the call, defaults to the context namespace
        resource_id: Optional resource identifier for context

    Returns:
        Appropriate storage exception
    """
    namespace = namespace or namespace_from_context()
    context = f"{operation} on {table_name}"
    if resource_id:
        context += f" (resource: {resource_id})"

    if isinstance(error, (EndpointConnectionError, ConnectTimeoutError, NoCredentialsError, PartialCredentialsError)):
        return DialError(f"could not dial database - {context}", error, namespace)

    if isinstance(error, ReadTimeoutError):
        return _operation_failed(operation, f"Request timeout - {context}", error, namespace, retryable=True)

    if not isinstance(error, ClientError):
        logger.warning(f"Unexpected botocore error {type(error).__name__} during {context}")
        return _operation_failed(operation, f"DynamoDB operation failed - {context}", error, namespace)

    error_code = error.response.get('Error', {}).get('Code', 'Unknown')
    error_message = error.response.get('Error', {}).get('Message', '')
    full_message = f"{context}: {error_message}"

    if error_code in _CONFLICT_CODES:
        return ConcurrencyConflictError(f"Conditional check failed - {full_message}", resource_id, namespace, error)

    elif error_code == 'TransactionCanceledException':
        reasons = _cancellation_reasons(error)
        if any(reason in _CONFLICT_REASONS for reason in reasons):
            return ConcurrencyConflictError(f"Transaction cancelled - {full_message}", resource_id, namespace, error)
        return _operation_failed(
            operation, f"Transaction cancelled - {full_message}", error, namespace,
            retryable=True, context={'cancellation_reasons': reasons},
        )

    elif error_code == 'ValidationException':
        return _operation_failed(operation, f"Request rejected - {full_message}", error, namespace)

    elif error_code == 'ResourceNotFoundException':
        return _operation_failed(operation, f"Table not found - {full_message}", error, namespace)

    elif error_code in _DIAL_CODES:
        return DialError(f"Authentication/endpoint failure - {full_message}", error, namespace)

    elif error_code in _RETRYABLE_CODES:
        return _operation_failed(operation, f"Throttling/service unavailable - {full_message}", error, namespace, retryable=True)

    logger.warning(f"Unknown DynamoDB error code '{error_code}' during {context}")
    return _operation_failed(operation, f"DynamoDB operation failed - {full_message}", error, namespace)


class TableGateway:
    """
    Thin gateway for one DynamoDB table.

    Every method either returns plain boto3 data or raises a StorageError;
    no botocore exception escapes. The gateway carries the namespace it serves
    so errors report it even when raised from other threads.
    """

    def __init__(
        self,
        config: StorageConfig,
        table_name: str,
        namespace: Optional[str] = None,
        dynamodb=None,
    ):
        """Initialize table gateway.

        Args:
            config: Storage configuration
            table_name: Name of the DynamoDB table
            namespace: Namespace served, defaults to the context namespace
            dynamodb: Optional boto3 DynamoDB resource to share between gateways
        """
        self.config = config
        self.table_name = table_name
        self.namespace = namespace or namespace_from_context()
        self._dynamodb = dynamodb
        self._table = None

    @property
    def dynamodb(self):
        """Lazy initialization of DynamoDB resource."""
        if self._dynamodb is None:
            self._dynamodb = create_dynamodb_resource(self.config, self.namespace)
        return self._dynamodb

    @property
    def table(self):
        """Get boto3 DynamoDB Table resource."""
        if self._table is None:
            try:
                self._table = self.dynamodb.Table(self.table_name)
            except Exception as e:
                logger.error(f"Failed to access table '{self.table_name}': {e}")
                raise DialError(f"Failed to access table '{self.table_name}'", e, self.namespace) from e
        return self._table

    def _error(self, error: Exception, operation: str, resource_id: Optional[str] = None) -> StorageError:
        return map_dynamodb_error(error, operation, self.table_name, self.namespace, resource_id)

    # -------------------------------------------------------------------------
    # Item operations
    # -------------------------------------------------------------------------

    def get_item(self, key: Dict[str, Any], consistent_read: bool = True) -> Optional[Dict[str, Any]]:
        """Read one item by primary key; None when absent."""
        try:
            response = self.table.get_item(Key=key, ConsistentRead=consistent_read)
        except (ClientError, BotoCoreError) as e:
            raise self._error(e, "GetItem", _key_id(key)) from e
        return response.get('Item')

    def scan_items(
        self,
        consistent_read: bool = True,
        filter_expression: Optional[str] = None,
        filter_args: Sequence[Any] = (),
        projection: Optional[Sequence[str]] = None,
    ) -> Iterator[Dict[str, Any]]:
        """
        Iterate over every item in the table, following pagination.

        Args:
            consistent_read: Use strongly consistent reads
            filter_expression: Opaque filter with ``?``/``$`` placeholders
            filter_args: Placeholder arguments, in order
            projection: Attributes to return, None for all

        Yields:
            Raw DynamoDB items
        """
        kwargs: Dict[str, Any] = {'ConsistentRead': consistent_read}
        projection_expression, projection_names = build_projection_expression(projection)
        if projection_expression:
            kwargs['ProjectionExpression'] = projection_expression
            kwargs['ExpressionAttributeNames'] = dict(projection_names)
        self._apply_filter(kwargs, filter_expression, filter_args)
        logger.debug(f"Scan on {self.table_name}: {kwargs}")
        yield from self._paginate("Scan", self.table.scan, kwargs)

    def query_items(
        self,
        key_condition,
        index_name: Optional[str] = None,
        filter_expression: Optional[str] = None,
        filter_args: Sequence[Any] = (),
        consistent_read: bool = False,
        scan_forward: bool = True,
    ) -> Iterator[Dict[str, Any]]:
        """
        Iterate over the items matching a key condition, following pagination.

        Args:
            key_condition: boto3 KeyConditionExpression
            index_name: Secondary index to query, None for the table itself
            filter_expression: Opaque filter with ``?``/``$`` placeholders
            filter_args: Placeholder arguments, in order
            consistent_read: Use strongly consistent reads (not allowed on GSIs)
            scan_forward: Ascending sort key order when True

        Yields:
            Raw DynamoDB items
        """
        kwargs: Dict[str, Any] = {
            'KeyConditionExpression': key_condition,
            'ScanIndexForward': scan_forward,
        }
        if index_name:
            kwargs['IndexName'] = index_name
        if consistent_read:
            kwargs['ConsistentRead'] = True
        self._apply_filter(kwargs, filter_expression, filter_args)
        logger.debug(f"Query on {self.table_name}: {kwargs}")
        yield from self._paginate("Query", self.table.query, kwargs)

    def put_item(
        self,
        item: Dict[str, Any],
        condition_expression=None,
        expression_attribute_names: Optional[Dict[str, str]] = None,
        expression_attribute_values: Optional[Dict[str, Any]] = None,
        resource_id: Optional[str] = None,
    ) -> None:
        """
        Put item into the table.

        Example:
            gateway.put_item(
                item={'aggregate_id': 'a-1', 'version': 1, ...},
                condition_expression=Attr('aggregate_id').exists()
            )
        """
        put_kwargs: Dict[str, Any] = {'Item': item}
        if condition_expression is not None:
            put_kwargs['ConditionExpression'] = condition_expression
        if expression_attribute_names:
            put_kwargs['ExpressionAttributeNames'] = expression_attribute_names
        if expression_attribute_values:
            put_kwargs['ExpressionAttributeValues'] = expression_attribute_values
        try:
            self.table.put_item(**put_kwargs)
        except (ClientError, BotoCoreError) as e:
            raise self._error(e, "PutItem", resource_id) from e
        logger.info(f"Put item in {self.table_name}" + (f": {resource_id}" if resource_id else ""))

    def update_item(
        self,
        key: Dict[str, Any],
        update_expression: str,
        expression_attribute_values: Optional[Dict[str, Any]] = None,
        expression_attribute_names: Optional[Dict[str, str]] = None,
        condition_expression=None,
        return_values: str = 'NONE',
    ) -> Optional[Dict[str, Any]]:
        """
        Update item in the table.

        Returns:
            Attributes selected by return_values, None for 'NONE'
        """
        update_kwargs: Dict[str, Any] = {
            'Key': key,
            'UpdateExpression': update_expression,
            'ReturnValues': return_values,
        }
        if expression_attribute_values:
            update_kwargs['ExpressionAttributeValues'] = expression_attribute_values
        if expression_attribute_names:
            update_kwargs['ExpressionAttributeNames'] = expression_attribute_names
        if condition_expression is not None:
            update_kwargs['ConditionExpression'] = condition_expression
        try:
            response = self.table.update_item(**update_kwargs)
        except (ClientError, BotoCoreError) as e:
            raise self._error(e, "UpdateItem", _key_id(key)) from e
        logger.info(f"Updated item in {self.table_name}: {key}")
        return response.get('Attributes') if return_values != 'NONE' else None

    def delete_item(
        self,
        key: Dict[str, Any],
        condition_expression=None,
        return_values: str = 'NONE',
    ) -> Optional[Dict[str, Any]]:
        """
        Delete item from the table.

        Returns:
            Deleted attributes if return_values != 'NONE' and the item existed
        """
        delete_kwargs: Dict[str, Any] = {
            'Key': key,
            'ReturnValues': return_values,
        }
        if condition_expression is not None:
            delete_kwargs['ConditionExpression'] = condition_expression
        try:
            response = self.table.delete_item(**delete_kwargs)
        except (ClientError, BotoCoreError) as e:
            raise self._error(e, "DeleteItem", _key_id(key)) from e
        logger.info(f"Deleted item from {self.table_name}: {key}")
        return response.get('Attributes') if return_values != 'NONE' else None

    def transact_write_items(
        self,
        transact_items: List[Dict[str, Any]],
        client_request_token: Optional[str] = None,
        resource_id: Optional[str] = None,
    ) -> None:
        """
        Execute transactional write operations; all of them apply or none do.

        Items use high-level (native Python) attribute values because the
        resource client serializes them.

        Example:
            gateway.transact_write_items([
                {
                    'Put': {
                        'TableName': gateway.table_name,
                        'Item': {...},
                        'ConditionExpression': 'attribute_not_exists(aggregate_id)'
                    }
                },
            ])
        """
        kwargs: Dict[str, Any] = {'TransactItems': transact_items}
        if client_request_token:
            kwargs['ClientRequestToken'] = client_request_token
        try:
            self.dynamodb.meta.client.transact_write_items(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise self._error(e, "TransactWriteItems", resource_id) from e
        logger.info(f"Transaction of {len(transact_items)} items completed on {self.table_name}")

    # -------------------------------------------------------------------------
    # Table lifecycle
    # -------------------------------------------------------------------------

    def table_exists(self) -> bool:
        try:
            self.dynamodb.meta.client.describe_table(TableName=self.table_name)
            return True
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') == 'ResourceNotFoundException':
                return False
            raise self._error(e, "DescribeTable") from e
        except BotoCoreError as e:
            raise self._error(e, "DescribeTable") from e

    def index_key_attributes(self) -> Set[str]:
        """Names of the attributes used as keys by the table's secondary indexes."""
        try:
            description = self.dynamodb.meta.client.describe_table(TableName=self.table_name)['Table']
        except (ClientError, BotoCoreError) as e:
            raise self._error(e, "DescribeTable") from e
        indexes = description.get('GlobalSecondaryIndexes', []) + description.get('LocalSecondaryIndexes', [])
        return {element['AttributeName'] for index in indexes for element in index['KeySchema']}

    def create_table(
        self,
        key_schema: List[Dict[str, str]],
        attribute_definitions: List[Dict[str, str]],
        indexes: Iterable[IndexDefinition] = (),
    ) -> bool:
        """
        Create the table and wait until it is usable.

        Returns:
            True if the table was created, False if it already existed
        """
        definitions = {d['AttributeName']: d for d in attribute_definitions}
        gsis = []
        for index in indexes:
            for definition in index.attribute_definitions():
                definitions.setdefault(definition['AttributeName'], definition)
            gsis.append(self._index_spec(index))

        kwargs: Dict[str, Any] = {
            'TableName': self.table_name,
            'KeySchema': key_schema,
            'AttributeDefinitions': list(definitions.values()),
        }
        if gsis:
            kwargs['GlobalSecondaryIndexes'] = gsis
        if self.config.uses_provisioned_throughput:
            kwargs['BillingMode'] = 'PROVISIONED'
            kwargs['ProvisionedThroughput'] = self._throughput()
        else:
            kwargs['BillingMode'] = 'PAY_PER_REQUEST'

        try:
            table = self.dynamodb.create_table(**kwargs)
            table.wait_until_exists()
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') == 'ResourceInUseException':
                logger.info(f"Table {self.table_name} already exists")
                return False
            raise self._error(e, "CreateTable") from e
        except BotoCoreError as e:
            raise self._error(e, "CreateTable") from e

        self._table = table
        logger.info(f"Created table {self.table_name}")
        return True

    def delete_table(self) -> bool:
        """
        Delete the table and wait until it is gone.

        Returns:
            True if the table was deleted, False if it did not exist
        """
        try:
            self.dynamodb.meta.client.delete_table(TableName=self.table_name)
            self.dynamodb.meta.client.get_waiter('table_not_exists').wait(TableName=self.table_name)
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') == 'ResourceNotFoundException':
                logger.info(f"Table {self.table_name} does not exist")
                return False
            raise self._error(e, "DeleteTable") from e
        except BotoCoreError as e:
            raise self._error(e, "DeleteTable") from e

        self._table = None
        logger.info(f"Deleted table {self.table_name}")
        return True

    def add_index(self, index: IndexDefinition) -> None:
        """Create a Global Secondary Index on the existing table."""
        self._update_indexes(index.attribute_definitions(), {'Create': self._index_spec(index)}, index.name)
        logger.info(f"Added index {index.name} to {self.table_name}")

    def remove_index(self, index_name: str) -> None:
        """Delete a Global Secondary Index from the table."""
        self._update_indexes(None, {'Delete': {'IndexName': index_name}}, index_name)
        logger.info(f"Removed index {index_name} from {self.table_name}")

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _update_indexes(self, attribute_definitions, update: Dict[str, Any], index_name: str) -> None:
        kwargs: Dict[str, Any] = {
            'TableName': self.table_name,
            'GlobalSecondaryIndexUpdates': [update],
        }
        if attribute_definitions:
            kwargs['AttributeDefinitions'] = attribute_definitions
        try:
            self.dynamodb.meta.client.update_table(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise self._error(e, "UpdateTable", index_name) from e

    def _index_spec(self, index: IndexDefinition) -> Dict[str, Any]:
        spec: Dict[str, Any] = {
            'IndexName': index.name,
            'KeySchema': index.key_schema(),
            'Projection': index.projection_spec(),
        }
        if self.config.uses_provisioned_throughput:
            spec['ProvisionedThroughput'] = self._throughput()
        return spec

    def _throughput(self) -> Dict[str, int]:
        return {
            'ReadCapacityUnits': self.config.read_capacity_units,
            'WriteCapacityUnits': self.config.write_capacity_units,
        }

    @staticmethod
    def _apply_filter(kwargs: Dict[str, Any], filter_expression: Optional[str], filter_args: Sequence[Any]) -> None:
        if not filter_expression:
            return
        expression, names, values = bind_placeholders(filter_expression, filter_args)
        kwargs['FilterExpression'] = expression
        if names:
            kwargs.setdefault('ExpressionAttributeNames', {}).update(names)
        if values:
            kwargs['ExpressionAttributeValues'] = values

    def _paginate(self, operation: str, method, kwargs: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
        while True:
            try:
                response = method(**kwargs)
            except (ClientError, BotoCoreError) as e:
                raise self._error(e, operation) from e
            yield from response.get('Items', [])
            last_key = response.get('LastEvaluatedKey')
            if not last_key:
                return
            kwargs['ExclusiveStartKey'] = last_key


def _key_id(key: Dict[str, Any]) -> Optional[str]:
    if not key:
        return None
    return "/".join(str(value) for value in key.values())


def create_dynamodb_resource(config: StorageConfig, namespace: Optional[str] = None):
    """
    Create a boto3 DynamoDB resource from configuration.

    Raises:
        DialError: If the session or resource cannot be created
    """
    try:
        session = boto3.Session(
            aws_access_key_id=config.aws_access_key_id,
            aws_secret_access_key=config.aws_secret_access_key,
            region_name=config.region_name
        )

        dynamodb_config: Dict[str, Any] = {
            'region_name': config.region_name
        }
        if config.endpoint_url:
            dynamodb_config['endpoint_url'] = config.endpoint_url

        dynamodb_config['config'] = Config(
            retries={'max_attempts': config.retries},
            max_pool_connections=config.max_pool_connections,
            read_timeout=config.timeout_seconds,
            connect_timeout=config.timeout_seconds
        )

        return session.resource('dynamodb', **dynamodb_config)
    except Exception as e:
        logger.error(f"Failed to create DynamoDB resource: {e}")
        raise DialError(f"could not dial database: {config.endpoint_url or config.region_name}", e, namespace) from e


def create_table_gateway(
    config: StorageConfig,
    table_name: str,
    namespace: Optional[str] = None,
    dynamodb=None,
) -> TableGateway:
    """
    Factory function to create a TableGateway for an entity table.

    Args:
        config: Storage configuration
        table_name: Base table name, prefixed with ``config.table_prefix``
        namespace: Namespace served by the gateway
        dynamodb: Optional shared boto3 resource

    Returns:
        Configured TableGateway instance
    """
    return TableGateway(config, config.get_table_name(table_name), namespace, dynamodb)

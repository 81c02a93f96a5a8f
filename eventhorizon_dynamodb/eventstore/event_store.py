"""
Namespaced DynamoDB Event Store

Append-only aggregate event logs with optimistic concurrency control.

Layout:
- One table per namespace, named ``<prefix><namespace>``
- Items keyed by ``aggregate_id`` (HASH) and ``version`` (RANGE)

Appends are a single TransactWriteItems call: every event is a conditional
Put that fails if its (aggregate, version) slot is taken, and a
ConditionCheck pins the expected current version. Two writers racing from
the same version cannot both win, and a loser leaves nothing behind.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Type
from uuid import uuid4

from pydantic import BaseModel

from ..config import StorageConfig
from ..core import TableGateway, create_dynamodb_resource
from ..exceptions import ConcurrencyConflictError, InvalidEventError, ValidationError
from ..models import Event
from ..namespace import NamespaceRouter, namespace_from_context
from ..utils import build_key_condition, from_dynamo_value, to_dynamo_value

logger = logging.getLogger(__name__)

AGGREGATE_ID = 'aggregate_id'
VERSION = 'version'

EVENT_KEY_SCHEMA = [
    {'AttributeName': AGGREGATE_ID, 'KeyType': 'HASH'},
    {'AttributeName': VERSION, 'KeyType': 'RANGE'},
]
EVENT_ATTRIBUTE_DEFINITIONS = [
    {'AttributeName': AGGREGATE_ID, 'AttributeType': 'S'},
    {'AttributeName': VERSION, 'AttributeType': 'N'},
]

# DynamoDB limit on actions per TransactWriteItems call
MAX_TRANSACTION_ITEMS = 100


class EventStore:
    """Event store keeping one DynamoDB table per namespace.

    The namespace of every call comes from the call context, see
    ``eventhorizon_dynamodb.namespace.with_namespace``.
    """

    def __init__(self, config: StorageConfig, table_prefix: Optional[str] = None, dynamodb=None):
        """Initialize the event store.

        Args:
            config: Storage configuration
            table_prefix: Table name prefix, defaults to ``config.event_table_prefix``
            dynamodb: Optional boto3 DynamoDB resource to share
        """
        self.config = config
        self.router = NamespaceRouter(config.event_table_prefix if table_prefix is None else table_prefix)
        self._dynamodb = dynamodb
        self._event_data: Dict[str, Type[BaseModel]] = {}
        config.configure_logging()

    @property
    def dynamodb(self):
        """Lazy initialization of DynamoDB resource."""
        if self._dynamodb is None:
            self._dynamodb = create_dynamodb_resource(self.config)
        return self._dynamodb

    def table_name(self, namespace: Optional[str] = None) -> str:
        """Physical table of ``namespace`` (default: the context namespace)."""
        return self.router.table_name(namespace)

    def register_event_data(self, event_type: str, model: Type[BaseModel]) -> None:
        """Decode payloads of ``event_type`` into ``model`` on load."""
        self._event_data[event_type] = model

    def maintainer(self) -> 'EventStoreMaintainer':
        from .maintainer import EventStoreMaintainer
        return EventStoreMaintainer(self)

    # -------------------------------------------------------------------------
    # Table lifecycle
    # -------------------------------------------------------------------------

    def create_table(self) -> bool:
        """Create the current namespace's table; a no-op if it exists."""
        return self._gateway().create_table(EVENT_KEY_SCHEMA, EVENT_ATTRIBUTE_DEFINITIONS)

    def delete_table(self) -> bool:
        """Delete the current namespace's table; a no-op if it is absent."""
        return self._gateway().delete_table()

    # -------------------------------------------------------------------------
    # Streams
    # -------------------------------------------------------------------------

    def save(self, events: Sequence[Event], original_version: int) -> None:
        """Append events to one aggregate stream, all or nothing.

        Args:
            events: Events of a single aggregate, versioned
                ``original_version + 1``, ``original_version + 2``, ...
            original_version: Version the stream is expected to be at

        Raises:
            InvalidEventError: Empty batch, mixed aggregates or too many events
            ConcurrencyConflictError: Versions do not continue ``original_version``
                or another writer got there first
            SaveFailedError: The write failed for any other reason
        """
        gateway = self._gateway()
        if not events:
            raise InvalidEventError("no events to append", gateway.namespace)

        first = events[0]
        for event in events:
            if event.aggregate_id != first.aggregate_id or event.aggregate_type != first.aggregate_type:
                logger.error(
                    f"Rejected batch for {first.aggregate_id}: event {event} belongs to "
                    f"{event.aggregate_type}/{event.aggregate_id}"
                )
                raise InvalidEventError(namespace=gateway.namespace)

        for offset, event in enumerate(events, start=1):
            expected = original_version + offset
            if event.version != expected:
                raise ConcurrencyConflictError(
                    f"incorrect event version: expected {expected}, got {event.version}",
                    first.aggregate_id,
                    gateway.namespace,
                )

        transact_items: List[Dict[str, Any]] = []
        if original_version > 0:
            transact_items.append({
                'ConditionCheck': {
                    'TableName': gateway.table_name,
                    'Key': {AGGREGATE_ID: first.aggregate_id, VERSION: original_version},
                    'ConditionExpression': f'attribute_exists({AGGREGATE_ID})',
                }
            })
        for event in events:
            transact_items.append({
                'Put': {
                    'TableName': gateway.table_name,
                    'Item': self._event_to_item(event),
                    'ConditionExpression': f'attribute_not_exists({AGGREGATE_ID})',
                }
            })

        if len(transact_items) > MAX_TRANSACTION_ITEMS:
            raise InvalidEventError(
                f"too many events to append at once: {len(events)}", gateway.namespace
            )

        gateway.transact_write_items(
            transact_items,
            client_request_token=str(uuid4()),
            resource_id=first.aggregate_id,
        )
        logger.info(
            f"Appended {len(events)} events to {first.aggregate_type}/{first.aggregate_id} "
            f"in {gateway.table_name} (version {original_version} -> {events[-1].version})"
        )

    def load(self, aggregate_id: str) -> List[Event]:
        """Return one aggregate's events in ascending version order.

        An aggregate without events gives an empty list.
        """
        gateway = self._gateway()
        items = gateway.query_items(
            build_key_condition(AGGREGATE_ID, aggregate_id),
            consistent_read=True,
            scan_forward=True,
        )
        return [self._item_to_event(item) for item in items]

    def load_all(self) -> List[Event]:
        """Return every event of the namespace, ordered by aggregate then version.

        Scans the whole table; meant for diagnostics and small data sets.
        """
        gateway = self._gateway()
        events = [self._item_to_event(item) for item in gateway.scan_items(consistent_read=True)]
        events.sort(key=lambda event: (event.aggregate_id, event.version))
        logger.info(f"Loaded {len(events)} events from {gateway.table_name}")
        return events

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _gateway(self) -> TableGateway:
        namespace = namespace_from_context()
        return TableGateway(self.config, self.router.table_name(namespace), namespace, self.dynamodb)

    def _event_to_item(self, event: Event) -> Dict[str, Any]:
        item = {
            AGGREGATE_ID: event.aggregate_id,
            VERSION: event.version,
            'aggregate_type': event.aggregate_type,
            'event_type': event.event_type,
            'timestamp': to_dynamo_value(event.timestamp),
            'metadata': to_dynamo_value(event.metadata),
        }
        if event.data is not None:
            item['data'] = to_dynamo_value(event.data)
        return item

    def _item_to_event(self, item: Dict[str, Any]) -> Event:
        attributes = from_dynamo_value(item)
        model = self._event_data.get(attributes.get('event_type'))
        try:
            if model is not None and attributes.get('data') is not None:
                attributes['data'] = model.model_validate(attributes['data'])
            return Event(**attributes)
        except Exception as e:
            logger.error(f"Failed to decode event item {item.get(AGGREGATE_ID)}@{item.get(VERSION)}: {e}")
            raise ValidationError(f"Failed to decode event: {e}", original_error=e) from e

import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from ..config import StorageConfig
from ..core import TableGateway, create_dynamodb_resource
from ..exceptions import (
    EntityNotFoundError,
    MissingEntityIDError,
    ModelNotConfiguredError,
    SaveFailedError,
    StorageError,
)
from ..models import EntityFactory, IndexDefinition, IndexQuery
from ..namespace import NamespaceRouter, namespace_from_context
from ..utils import build_key_condition, item_to_entity, model_to_item

logger = logging.getLogger(__name__)


class EntityRepository:
    """Generic DynamoDB repository for entities of a caller-defined shape.

    The repository never inspects entity attributes beyond the identifier.
    Reads materialize items through the factory installed with
    ``set_entity_factory``; writes serialize pydantic models as they are,
    except that ``None`` index keys are left out of the item.
    """

    def __init__(
        self,
        config: StorageConfig,
        table_name: str,
        namespaced: bool = False,
        id_attribute: str = "id",
        dynamodb=None,
    ):
        """Initialize repository.

        Args:
            config: Storage configuration
            table_name: Base table name, prefixed with ``config.table_prefix``
            namespaced: Route each call to ``<table>`` + context namespace
            id_attribute: Attribute holding the identifier (partition key)
            dynamodb: Optional boto3 DynamoDB resource to share
        """
        self.config = config
        self.base_table_name = config.get_table_name(table_name)
        self.router = NamespaceRouter(self.base_table_name) if namespaced else None
        self.id_attribute = id_attribute
        self._dynamodb = dynamodb
        self._factory: Optional[EntityFactory] = None
        self._index_keys: Dict[str, Set[str]] = {}
        config.configure_logging()

    @property
    def dynamodb(self):
        """Lazy initialization of DynamoDB resource."""
        if self._dynamodb is None:
            self._dynamodb = create_dynamodb_resource(self.config)
        return self._dynamodb

    @property
    def table_name(self) -> str:
        """Physical table used by calls made in the current context."""
        if self.router is not None:
            return self.router.table_name()
        return self.base_table_name

    def parent(self) -> None:
        """The repository is a terminal layer; it never wraps another one."""
        return None

    def set_entity_factory(self, factory: Optional[EntityFactory]) -> None:
        """Install the constructor used to materialize entities on every read.

        A pydantic model class is a valid factory. ``None`` removes it.
        """
        self._factory = factory

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def find(self, entity_id: Any) -> Any:
        """Find one entity with a strongly consistent read.

        Raises:
            ModelNotConfiguredError: If no entity factory is installed
            EntityNotFoundError: If no item exists for ``entity_id``
            QueryFailedError: If the read fails
        """
        factory = self._require_factory()
        gateway = self._gateway()
        key = self._key(entity_id)
        if not key[self.id_attribute]:
            raise EntityNotFoundError(gateway.table_name, key, gateway.namespace)

        item = gateway.get_item(key, consistent_read=True)
        if item is None:
            raise EntityNotFoundError(gateway.table_name, key, gateway.namespace)
        return item_to_entity(item, factory)

    def find_all(self) -> List[Any]:
        """Return every entity in the table (strongly consistent scan)."""
        factory = self._require_factory()
        gateway = self._gateway()
        entities = [item_to_entity(item, factory) for item in gateway.scan_items(consistent_read=True)]
        logger.info(f"Retrieved {len(entities)} entities from {gateway.table_name}")
        return entities

    def find_with_filter(self, expr: str, *args: Any) -> List[Any]:
        """Return entities matching an opaque filter expression.

        ``expr`` is passed to the table service untouched: ``?`` placeholders
        take positional values from ``args``, ``$`` placeholders take
        attribute names.

        Example:
            >>> repo.find_with_filter("category_code = ?", 123)
        """
        factory = self._require_factory()
        gateway = self._gateway()
        items = gateway.scan_items(consistent_read=True, filter_expression=expr, filter_args=args)
        entities = [item_to_entity(item, factory) for item in items]
        logger.info(f"Filter '{expr}' matched {len(entities)} entities in {gateway.table_name}")
        return entities

    def find_with_filter_using_index(self, index: IndexQuery, expr: str = "", *args: Any) -> List[Any]:
        """Return entities from one partition of a secondary index.

        The key condition is an equality on the index partition key and, when
        given, on its sort key; ``expr``/``args`` filter further within that
        partition exactly as in ``find_with_filter``.

        Example:
            >>> query = IndexQuery(index_name='PartitionIndex', partition_key='partition_num',
            ...                    partition_value=123, sort_key='sort_label', sort_value='test')
            >>> repo.find_with_filter_using_index(query, "category_code = ?", 123)
        """
        factory = self._require_factory()
        gateway = self._gateway()
        key_condition = build_key_condition(
            index.partition_key, index.partition_value, index.sort_key, index.sort_value
        )
        items = gateway.query_items(
            key_condition,
            index_name=index.index_name,
            filter_expression=expr or None,
            filter_args=args,
        )
        entities = [item_to_entity(item, factory) for item in items]
        logger.info(f"Index {index.index_name} query matched {len(entities)} entities in {gateway.table_name}")
        return entities

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def save(self, entity: Any) -> None:
        """Insert or overwrite an entity by identifier.

        Raises:
            MissingEntityIDError: If the entity identifier is empty
            SaveFailedError: If the write fails, wrapping the store error
        """
        entity_id = self._entity_id(entity)
        gateway = self._gateway()
        if not entity_id:
            raise MissingEntityIDError(gateway.namespace, {'table_name': gateway.table_name})

        item = model_to_item(entity)
        item[self.id_attribute] = str(entity_id)
        try:
            self._drop_null_index_keys(gateway, item)
            gateway.put_item(item, resource_id=str(entity_id))
        except SaveFailedError:
            raise
        except StorageError as e:
            raise SaveFailedError(
                "could not save entity", e, gateway.namespace,
                retryable=getattr(e, 'retryable', False),
            ) from e

    def remove(self, entity_id: Any) -> None:
        """Delete an entity by identifier.

        Raises:
            EntityNotFoundError: If there was no entity to delete
            SaveFailedError: If the delete fails
        """
        gateway = self._gateway()
        key = self._key(entity_id)
        if not key[self.id_attribute]:
            raise EntityNotFoundError(gateway.table_name, key, gateway.namespace)
        deleted =gateway.delete_item(key, return_values='ALL_OLD')
        if not deleted:
            raise EntityNotFoundError(gateway.table_name, key, gateway.namespace)

    # -------------------------------------------------------------------------
    # Table lifecycle
    # -------------------------------------------------------------------------

    def create_table(self, indexes: Iterable[IndexDefinition] = ()) -> bool:
        """Create the entity table (and its indexes) for the current context."""
        gateway = self._gateway()
        self._index_keys.pop(gateway.table_name, None)
        return gateway.create_table(
            key_schema=[{'AttributeName': self.id_attribute, 'KeyType': 'HASH'}],
            attribute_definitions=[{'AttributeName': self.id_attribute, 'AttributeType': 'S'}],
            indexes=indexes,
        )

    def delete_table(self) -> bool:
        gateway = self._gateway()
        self._index_keys.pop(gateway.table_name, None)
        return gateway.delete_table()

    def add_index(self, index: IndexDefinition) -> None:
        gateway = self._gateway()
        self._index_keys.pop(gateway.table_name, None)
        gateway.add_index(index)

    def remove_index(self, index_name: str) -> None:
        gateway = self._gateway()
        self._index_keys.pop(gateway.table_name, None)
        gateway.remove_index(index_name)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _gateway(self) -> TableGateway:
        return TableGateway(self.config, self.table_name, namespace_from_context(), self.dynamodb)

    def _require_factory(self) -> EntityFactory:
        if self._factory is None:
            raise ModelNotConfiguredError(namespace_from_context())
        return self._factory

    def _key(self, entity_id: Any) -> Dict[str, str]:
        return {self.id_attribute: "" if entity_id is None else str(entity_id)}

    def _drop_null_index_keys(self, gateway: TableGateway, item: Dict[str, Any]) -> None:
        # Index keys cannot hold NULL; an absent attribute keeps the item out of the index
        if not any(value is None for value in item.values()):
            return
        if gateway.table_name not in self._index_keys:
            self._index_keys[gateway.table_name] = gateway.index_key_attributes()
        for attribute in self._index_keys[gateway.table_name]:
            if attribute in item and item[attribute] is None:
                del item[attribute]

    def _entity_id(self, entity: Any) -> Optional[str]:
        entity_id = getattr(entity, 'entity_id', None)
        if entity_id is None:
            entity_id = getattr(entity, self.id_attribute, None)
        return str(entity_id) if entity_id else None

"""
Tests for EntityRepository against a mocked DynamoDB (moto).
"""

import pytest

from eventhorizon_dynamodb import (
    EntityNotFoundError,
    EntityRepository,
    IndexDefinition,
    IndexQuery,
    MissingEntityIDError,
    ModelNotConfiguredError,
    QueryFailedError,
    SaveFailedError,
    ValidationError,
    new_id,
    with_namespace,
)
from tests.helpers import Noted, SampleEntity, raw_items


def sample(name: str = "entity", **attributes) -> SampleEntity:
    return SampleEntity(id=new_id(), name=name, **attributes)


class TestSaveAndFind:
    """Test writes and point reads."""

    def test_save_then_find(self, entity_repository):
        entity = sample("first", category_code=7, tags=["a", "b"])

        entity_repository.save(entity)

        assert entity_repository.find(entity.id) == entity

    def test_save_overwrites(self, entity_repository):
        entity = sample("before")
        entity_repository.save(entity)

        updated = entity.model_copy(update={'name': "after"})
        entity_repository.save(updated)

        assert entity_repository.find(entity.id).name == "after"
        assert len(entity_repository.find_all()) == 1

    def test_find_missing(self, entity_repository):
        with pytest.raises(EntityNotFoundError) as exc_info:
            entity_repository.find("does-not-exist")

        error = exc_info.value
        assert error.table_name == "test_entities"
        assert error.key == {'id': 'does-not-exist'}
        assert str(error).startswith("could not find entity")

    def test_none_values_round_trip(self, entity_repository):
        entity_repository.set_entity_factory(Noted)
        entity = Noted(id="n-1", note=None, extra={"kept": None})

        entity_repository.save(entity)

        assert entity_repository.find("n-1") == entity

    def test_none_index_key_keeps_item_out_of_index(self, entity_repository, partition_index, mock_dynamodb_resource):
        entity = sample("unindexed", sort_label="test")
        entity_repository.save(entity)

        stored = raw_items(mock_dynamodb_resource, "test_entities")[0]
        assert 'partition_num' not in stored
        assert entity_repository.find(entity.id) == entity
        assert entity_repository.find_with_filter_using_index(IndexQuery.for_index(partition_index, 1, "test")) == []

    @pytest.mark.parametrize("entity_id", ["", None])
    def test_find_empty_id(self, entity_repository, entity_id):
        with pytest.raises(EntityNotFoundError):
            entity_repository.find(entity_id)

    def test_missing_id_writes_nothing(self, entity_repository, mock_dynamodb_resource):
        with pytest.raises(MissingEntityIDError):
            entity_repository.save(SampleEntity(name="anonymous"))

        assert raw_items(mock_dynamodb_resource, "test_entities") == []

    def test_save_to_missing_table(self, storage_config, mock_dynamodb_resource):
        repo = EntityRepository(storage_config, "nowhere", dynamodb=mock_dynamodb_resource)

        with pytest.raises(SaveFailedError):
            repo.save(sample())

    def test_find_in_missing_table(self, storage_config, mock_dynamodb_resource):
        repo = EntityRepository(storage_config, "nowhere", dynamodb=mock_dynamodb_resource)
        repo.set_entity_factory(SampleEntity)

        with pytest.raises(QueryFailedError):
            repo.find("x")

    def test_factory_receives_attributes(self, entity_repository):
        entity = sample("plain", category_code=3)
        entity_repository.save(entity)
        entity_repository.set_entity_factory(dict)

        found = entity_repository.find(entity.id)

        assert found['name'] == "plain"
        assert found['category_code'] == 3

    def test_factory_rejecting_item(self, entity_repository):
        entity_repository.save(sample())

        def reject(**attributes):
            raise ValueError("unsupported shape")

        entity_repository.set_entity_factory(reject)

        with pytest.raises(ValidationError, match="unsupported shape"):
            entity_repository.find_all()


class TestRemove:
    """Test deletes."""

    def test_remove_then_find(self, entity_repository):
        entity = sample()
        entity_repository.save(entity)

        entity_repository.remove(entity.id)

        with pytest.raises(EntityNotFoundError):
            entity_repository.find(entity.id)

    def test_remove_missing(self, entity_repository):
        with pytest.raises(EntityNotFoundError):
            entity_repository.remove("does-not-exist")

    def test_remove_empty_id(self, entity_repository):
        with pytest.raises(EntityNotFoundError):
            entity_repository.remove("")

    def test_remove_does_not_need_factory(self, entity_repository):
        entity = sample()
        entity_repository.save(entity)
        entity_repository.set_entity_factory(None)

        entity_repository.remove(entity.id)


class TestQueries:
    """Test scans, filters and index queries."""

    def test_find_all(self, entity_repository):
        for i in range(3):
            entity_repository.save(sample(f"entity-{i}"))

        assert len(entity_repository.find_all()) == 3

    def test_find_all_empty(self, entity_repository):
        assert entity_repository.find_all() == []

    def test_find_with_filter(self, entity_repository):
        entity_repository.save(sample("a", category_code=123))
        entity_repository.save(sample("b", category_code=123))
        entity_repository.save(sample("c", category_code=456))

        result = entity_repository.find_with_filter("category_code = ?", 123)

        assert sorted(entity.name for entity in result) == ["a", "b"]

    def test_find_with_name_placeholder(self, entity_repository):
        entity_repository.save(sample("a", category_code=1))
        entity_repository.save(sample("b", category_code=2))

        result = entity_repository.find_with_filter("$ > ?", "category_code", 1)

        assert [entity.name for entity in result] == ["b"]

    def test_filter_placeholder_mismatch(self, entity_repository):
        with pytest.raises(ValidationError):
            entity_repository.find_with_filter("category_code = ?")

    def test_filter_rejected_by_table_is_a_query_failure(self, entity_repository):
        entity_repository.save(sample("a", category_code=1))

        with pytest.raises(QueryFailedError):
            entity_repository.find_with_filter("category_code === ?", 1)

    def test_find_with_filter_using_index(self, entity_repository, partition_index):
        entity_repository.save(sample("match", partition_num=123, sort_label="test", category_code=1))
        entity_repository.save(sample("other-sort", partition_num=123, sort_label="prod", category_code=1))
        entity_repository.save(sample("other-partition", partition_num=456, sort_label="test", category_code=1))
        entity_repository.save(sample("unindexed"))

        query = IndexQuery.for_index(partition_index, 123, "test")
        result = entity_repository.find_with_filter_using_index(query)

        assert [entity.name for entity in result] == ["match"]

    def test_index_query_partition_only_with_filter(self, entity_repository, partition_index):
        entity_repository.save(sample("keep", partition_num=123, sort_label="a", category_code=5))
        entity_repository.save(sample("drop", partition_num=123, sort_label="b", category_code=6))
        entity_repository.save(sample("elsewhere", partition_num=999, sort_label="a", category_code=5))

        query = IndexQuery(index_name='PartitionIndex', partition_key='partition_num', partition_value=123)
        result = entity_repository.find_with_filter_using_index(query, "category_code = ?", 5)

        assert [entity.name for entity in result] == ["keep"]


class TestRepositoryConfiguration:
    """Test factory handling, layering and table lifecycle."""

    @pytest.mark.parametrize("operation", [
        lambda repo: repo.find("x"),
        lambda repo: repo.find_all(),
        lambda repo: repo.find_with_filter("category_code = ?", 1),
        lambda repo: repo.find_with_filter_using_index(
            IndexQuery(index_name='PartitionIndex', partition_key='partition_num', partition_value=1)
        ),
    ])
    def test_reads_need_a_factory(self, storage_config, mock_dynamodb_resource, operation):
        repo = EntityRepository(storage_config, "entities", dynamodb=mock_dynamodb_resource)

        with pytest.raises(ModelNotConfiguredError) as exc_info:
            operation(repo)

        assert str(exc_info.value) == "model not set (default)"

    def test_parent_is_none(self, entity_repository):
        assert entity_repository.parent() is None

    def test_custom_id_attribute(self, storage_config, mock_dynamodb_resource):
        repo = EntityRepository(storage_config, "keyed", id_attribute="sku", dynamodb=mock_dynamodb_resource)
        repo.create_table()
        repo.set_entity_factory(dict)

        repo.save(SampleEntity(id="sku-1", name="widget"))

        found = repo.find("sku-1")
        assert found['sku'] == "sku-1"
        assert found['name'] == "widget"

    def test_table_lifecycle(self, storage_config, mock_dynamodb_resource):
        repo = EntityRepository(storage_config, "lifecycle", dynamodb=mock_dynamodb_resource)

        assert repo.create_table() is True
        assert repo.create_table() is False
        assert repo.delete_table() is True
        assert repo.delete_table() is False

    def test_add_index(self, storage_config, mock_dynamodb_resource):
        repo = EntityRepository(storage_config, "indexed", dynamodb=mock_dynamodb_resource)
        repo.create_table()

        repo.add_index(IndexDefinition(name='CategoryIndex', partition_key='category_code', partition_key_type='N'))

        description = mock_dynamodb_resource.meta.client.describe_table(TableName="test_indexed")['Table']
        assert [index['IndexName'] for index in description['GlobalSecondaryIndexes']] == ['CategoryIndex']

    def test_namespaced_repository_isolation(self, storage_config, mock_dynamodb_resource):
        repo = EntityRepository(storage_config, "tenant_", namespaced=True, dynamodb=mock_dynamodb_resource)
        repo.set_entity_factory(SampleEntity)
        entity = sample("only-in-a")

        with with_namespace("A"):
            assert repo.table_name == "test_tenant_A"
            repo.create_table()
            repo.save(entity)
        with with_namespace("B"):
            repo.create_table()
            assert repo.find_all() == []
            with pytest.raises(EntityNotFoundError):
                repo.find(entity.id)
        with with_namespace("A"):
            assert repo.find(entity.id) == entity

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_ATTRIBUTE_TYPES = ('S', 'N', 'B')


class IndexDefinition(BaseModel):
    """Defines a Global Secondary Index on an entity table."""

    name: str = Field(..., min_length=3, description="Index name")
    partition_key: str = Field(..., min_length=1, description="Index partition key attribute")
    partition_key_type: str = Field(default='S', description="DynamoDB scalar type of the partition key")
    sort_key: Optional[str] = Field(None, description="Index sort key attribute")
    sort_key_type: str = Field(default='S', description="DynamoDB scalar type of the sort key")
    projection: Optional[List[str]] = Field(None, description="Projected attributes, None means ALL")

    model_config = ConfigDict(
        frozen=True
    )

    @field_validator('partition_key_type', 'sort_key_type')
    @classmethod
    def validate_attribute_type(cls, v):
        if v not in _ATTRIBUTE_TYPES:
            raise ValueError(f"Attribute type must be one of: {_ATTRIBUTE_TYPES}")
        return v

    def attribute_definitions(self) -> List[Dict[str, str]]:
        definitions = [{'AttributeName': self.partition_key, 'AttributeType': self.partition_key_type}]
        if self.sort_key:
            definitions.append({'AttributeName': self.sort_key, 'AttributeType': self.sort_key_type})
        return definitions

    def key_schema(self) -> List[Dict[str, str]]:
        schema = [{'AttributeName': self.partition_key, 'KeyType': 'HASH'}]
        if self.sort_key:
            schema.append({'AttributeName': self.sort_key, 'KeyType': 'RANGE'})
        return schema

    def projection_spec(self) -> Dict[str, Any]:
        if self.projection is None:
            return {'ProjectionType': 'ALL'}
        return {'ProjectionType': 'INCLUDE', 'NonKeyAttributes': list(self.projection)}


class IndexQuery(BaseModel):
    """Equality lookup into one partition (and optionally one sort key) of an index."""

    index_name: str = Field(..., min_length=1)
    partition_key: str = Field(..., min_length=1)
    partition_value: Any
    sort_key: Optional[str] = None
    sort_value: Any = None

    @classmethod
    def for_index(cls, index: IndexDefinition, partition_value: Any, sort_value: Any = None) -> 'IndexQuery':
        """Build a query from an index definition."""
        return cls(
            index_name=index.name,
            partition_key=index.partition_key,
            partition_value=partition_value,
            sort_key=index.sort_key if sort_value is not None else None,
            sort_value=sort_value,
        )

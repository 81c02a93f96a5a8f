from typing import Any, Callable
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

# Constructor used to materialize an entity from stored attributes
EntityFactory = Callable[..., Any]


def new_id() -> str:
    """Generate a new random entity or aggregate identifier."""
    return str(uuid4())


class Entity(BaseModel):
    """
    Base model for records stored through ``EntityRepository``.

    Subclasses add their own attributes; the repository only relies on the
    identifier, which is stored as the table's partition key.
    """

    id: str = Field(default="", description="Unique identifier, used as partition key")

    model_config = ConfigDict(
        validate_assignment=True
    )

    @property
    def entity_id(self) -> str:
        return self.id

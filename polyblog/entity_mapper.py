from typing import Any, Generic, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from polyblog.errors import RowDecodeError


T = TypeVar("T", bound=BaseModel)


class EntityMapper(Generic[T]):
    """Composition class for decoding rows into entities"""

    def __init__(self, entity_class: type[T]):
        self.entity_class = entity_class

    def map_row_to_entity(self, row: Any) -> T:
        """Map a database row to an entity, rejecting rows without a primary key"""
        data = dict(row)
        if data.get("id") is None:
            raise RowDecodeError(
                f"Row from {self.entity_class.__name__} table is missing primary key 'id'"
            )
        try:
            return self.entity_class.model_validate(data)
        except PydanticValidationError as e:
            raise RowDecodeError(
                f"Failed to decode {self.entity_class.__name__} row: {e}"
            ) from e

    def map_rows_to_entities(self, rows: list[Any]) -> list[T]:
        """Map database rows to entities"""
        return [self.map_row_to_entity(row) for row in rows]

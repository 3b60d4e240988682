"""Base model for all records handled by the PSA engine.

Records live in the record store as plain dicts. Services turn them into
these models with ``from_record`` and back with ``to_record`` so every
read and write passes the same field validation.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class BaseDataModel(BaseModel):
    """Base class for all data models.

    Provides common configuration and helper methods for:
    - Validation with type checking on construction and assignment
    - Conversion to/from record-store dictionaries

    Example:
        >>> class Widget(BaseDataModel):
        ...     name: str
        >>> widget = Widget.from_record({"id": "w-1", "name": "Dial"})
        >>> widget.to_record()
        {'name': 'Dial'}
    """

    model_config = ConfigDict(
        # Allow arbitrary types like Decimal, date, time
        arbitrary_types_allowed=True,
        # Validate on assignment to catch errors early
        validate_assignment=True,
        strict=False,
        extra="forbid",
        frozen=False,
    )

    id: Optional[str] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]):
        """Build a model from a stored record dict."""
        return cls.model_validate(record)

    def to_record(self) -> Dict[str, Any]:
        """Return the stored form of this model, without its id."""
        return self.model_dump(exclude={"id"})

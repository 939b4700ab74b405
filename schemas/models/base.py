"""
Base model for the MongoDB documents (linked OAuth accounts, API keys).

PyObjectId lets Pydantic v2 validate and serialise BSON ObjectIds.
MongoBaseModel round-trips between model instances and raw pymongo dicts.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Optional

from bson import ObjectId
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, GetCoreSchemaHandler
from pydantic_core import core_schema

from shared.datetime_utils import ensure_utc


class PyObjectId(ObjectId):
    """BSON ObjectId that Pydantic v2 knows how to validate and serialize."""

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls._validate,
            serialization=core_schema.to_string_ser_schema(),
        )

    @classmethod
    def _validate(cls, v: Any) -> ObjectId:
        if isinstance(v, ObjectId):
            return v
        if isinstance(v, str) and ObjectId.is_valid(v):
            return ObjectId(v)
        raise ValueError(f"Invalid ObjectId: {v!r}")


class MongoBaseModel(BaseModel):
    """
    Base for the document models.

    ``id`` maps to ``_id``. Subclasses declare datetimes as ``UtcDatetime``.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    id: Optional[PyObjectId] = Field(default=None, alias="_id")

    def to_mongo(self) -> dict:
        """Dict ready for insertion; a None ``_id`` is dropped so MongoDB generates one."""
        data = self.model_dump(by_alias=True, exclude_none=False)
        if data.get("_id") is None:
            data.pop("_id", None)
        return data

    @classmethod
    def from_mongo(cls, data: Optional[dict]) -> Optional["MongoBaseModel"]:
        """Model instance from a raw document, or None when *data* is None."""
        if data is None:
            return None
        return cls.model_validate(data)


# Naive datetimes coming back from pymongo are treated as UTC
UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]

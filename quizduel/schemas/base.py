"""Base schemas with common configuration."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, model_serializer

from quizduel.utils.datetime_helpers import isoformat_utc


class BaseSchema(BaseModel):
    """Base schema for API responses.

    Datetimes are rendered as ISO 8601 UTC with a 'Z' suffix. SQLite returns
    naive datetimes, which are treated as UTC.
    """

    model_config = ConfigDict(
        from_attributes=True,
    )

    @model_serializer(mode="wrap")
    def serialize_model(self, handler):
        def _convert(value):
            if isinstance(value, datetime):
                return isoformat_utc(value)
            if isinstance(value, list):
                return [_convert(item) for item in value]
            if isinstance(value, dict):
                return {key: _convert(item) for key, item in value.items()}
            return value

        data = handler(self)
        return {key: _convert(value) for key, value in data.items()}

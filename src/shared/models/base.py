"""Base model configuration for all Pydantic models."""

from pydantic import BaseModel, ConfigDict


class KsitBaseModel(BaseModel):
    """Base model with common configuration.

    Conventions:
    - All timestamps are timezone-aware UTC datetimes
    - Field names are lowercase snake_case
    - Enum fields hold their string values
    """

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        use_enum_values=True,
    )

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Schemas are read straight off ORM rows and engine dataclasses."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True
    )

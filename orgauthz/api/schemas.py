"""Wire schemas shared by the routers.

JSON bodies use camelCase on the wire; Python code keeps snake_case.
Datetimes serialize as ISO-8601 strings.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

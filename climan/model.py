"""climan model - typed workflow definition.

These models describe the structure of workflow YAML files. They are the
single source for validation and for the JSON Schema printed by
``climan schema``.
"""

from enum import Enum
from typing import Annotated, List, Literal, Union

from jsonpath_ng.exceptions import JSONPathError
from pydantic import (
    BaseModel,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    field_validator,
)
from typing_extensions import TypeAliasType

from climan.extractors import compile_expression

# A query parameter value before serialization. Strict so that a quoted
# "true" in YAML stays a string and a bare true stays a boolean.
ParamValue = TypeAliasType(
    "ParamValue",
    Union[StrictBool, StrictInt, StrictFloat, StrictStr, List["ParamValue"]],
)


class Method(str, Enum):
    """HTTP methods a request may use."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"


class FileBody(BaseModel):
    """Raw bytes read from disk, relative to the workflow file."""

    file: str

    model_config = {"extra": "forbid"}


class ContentBody(BaseModel):
    """Inline body text. ``trim`` strips surrounding whitespace after resolution."""

    content: str
    trim: bool = False

    model_config = {"extra": "forbid"}


Body = Union[FileBody, ContentBody]


class BasicAuth(BaseModel):
    type: Literal["basic"]
    username: str
    password: str | None = None

    model_config = {"extra": "forbid"}


class BearerAuth(BaseModel):
    type: Literal["bearer"]
    token: str

    model_config = {"extra": "forbid"}


Authentication = Annotated[Union[BasicAuth, BearerAuth], Field(discriminator="type")]


class Request(BaseModel):
    """One step of a workflow."""

    name: str
    method: Method
    uri: str
    headers: dict[str, str] | None = None
    query_params: dict[str, ParamValue] | None = Field(default=None, alias="queryParams")
    body: Body | None = None
    authentication: Authentication | None = None
    extractors: dict[str, str] | None = None

    model_config = {"extra": "forbid", "populate_by_name": True}

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, v):
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("extractors")
    @classmethod
    def _check_expressions(cls, v):
        for name, expression in (v or {}).items():
            try:
                compile_expression(expression)
            except JSONPathError as e:
                raise ValueError(f"invalid expression for '{name}': {e}") from e
        return v


class ApiSpec(BaseModel):
    """An ordered list of requests. Order is execution order."""

    name: str | None = None
    requests: list[Request]

    model_config = {"extra": "forbid"}


def json_schema() -> dict:
    """Return the JSON Schema of the workflow file format."""
    return ApiSpec.model_json_schema(by_alias=True)

from collections.abc import Mapping
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from reminder_queue.errors import ReminderServiceError, validation_error


class CamelModel(BaseModel):
    """Base for external shapes: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


RequestT = TypeVar("RequestT", bound=CamelModel)


def parse_request(model_cls: type[RequestT], request: RequestT | Mapping[str, Any]) -> RequestT:
    """
    Accept either a request model or a plain mapping from the transport layer.

    Raises:
        ReminderServiceError: VALIDATION kind naming the first offending field.
    """
    if isinstance(request, model_cls):
        return request

    try:
        return model_cls.model_validate(request)
    except PydanticValidationError as e:
        raise _to_validation_error(e) from e


def _to_validation_error(error: PydanticValidationError) -> ReminderServiceError:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first["loc"]) or None

    if field is None:
        return validation_error(f"Invalid request: {first['msg']}")
    if first["type"] == "missing":
        return validation_error(f"Missing required field '{field}'", field=field)
    return validation_error(f"Invalid '{field}': {first['msg']}", field=field)

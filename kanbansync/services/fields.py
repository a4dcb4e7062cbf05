"""Typed board field values.

Each board field data type has its own value variant with its own coercion
rule; coerce_field_value picks the variant with an exhaustive match on the
field's data type and returns None when the value must be skipped.
"""

import logging
import math
from datetime import date
from typing import Annotated, Any, Dict, Literal, Union

from pydantic import BaseModel, Field

from kanbansync.models import ProjectField
from kanbansync.store.schemas.task_record import is_date_string

LOG = logging.getLogger("kanbansync.services.fields")


class TextValue(BaseModel):
    kind: Literal["text"] = "text"
    text: str

    def to_graphql(self) -> Dict[str, Any]:
        return {"text": self.text}


class NumberValue(BaseModel):
    kind: Literal["number"] = "number"
    number: float

    def to_graphql(self) -> Dict[str, Any]:
        return {"number": self.number}


class DateValue(BaseModel):
    kind: Literal["date"] = "date"
    date: str = Field(..., description="YYYY-MM-DD")

    def to_graphql(self) -> Dict[str, Any]:
        return {"date": self.date}


class SingleSelectValue(BaseModel):
    kind: Literal["single_select"] = "single_select"
    option_id: str
    option_name: str

    def to_graphql(self) -> Dict[str, Any]:
        return {"singleSelectOptionId": self.option_id}


FieldValue = Annotated[
    Union[TextValue, NumberValue, DateValue, SingleSelectValue],
    Field(discriminator="kind"),
]


def _coerce_number(raw: Any) -> NumberValue | None:
    if isinstance(raw, bool):
        return None
    try:
        number = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return NumberValue(number=number)


def _coerce_date(raw: Any) -> DateValue | None:
    if isinstance(raw, date):
        return DateValue(date=raw.isoformat()[:10])
    if isinstance(raw, str) and is_date_string(raw):
        return DateValue(date=raw.strip())
    return None


def _coerce_option(field: ProjectField, raw: Any) -> SingleSelectValue | None:
    wanted = str(raw).strip().casefold()
    for name, option_id in field.options.items():
        if name.strip().casefold() == wanted:
            return SingleSelectValue(option_id=option_id, option_name=name)
    return None


def coerce_field_value(field: ProjectField, raw: Any) -> FieldValue | None:
    """Convert a header value to the shape the field's data type expects.

    Returns None (skip) for values that do not fit: non-numeric for NUMBER,
    non YYYY-MM-DD for DATE, no case-insensitive option match for
    SINGLE_SELECT, or an unsupported field type.
    """
    match field.data_type:
        case "TEXT":
            return TextValue(text=str(raw))
        case "NUMBER":
            return _coerce_number(raw)
        case "DATE":
            return _coerce_date(raw)
        case "SINGLE_SELECT":
            return _coerce_option(field, raw)
        case _:
            LOG.debug("Field %r has unsupported type %s", field.name, field.data_type)
            return None

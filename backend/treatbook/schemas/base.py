"""
Base schemas with standardized field types for consistent API responses.
"""
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic_core import core_schema

CENTS = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Coerce a number to a Decimal rounded to cents."""
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float, str)):
        amount = Decimal(str(value))
    else:
        raise ValueError(f"Cannot convert {type(value)} to Money")
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


class StandardizedModel(BaseModel):
    """Base model with standardized JSON encoding"""

    model_config = ConfigDict(use_enum_values=True, populate_by_name=True, from_attributes=True)


class StrictModel(BaseModel):
    """Strict base for request DTOs: forbid extras, validate defaults and assignments."""

    model_config = ConfigDict(
        extra="forbid",
        str_strip_whitespace=True,
        validate_default=True,
        validate_assignment=True,
    )


class Money(Decimal):
    """Money field: validated to cents, always serialized as float"""

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any) -> core_schema.CoreSchema:
        return core_schema.no_info_after_validator_function(
            to_money,
            core_schema.union_schema(
                [
                    core_schema.int_schema(),
                    core_schema.float_schema(),
                    core_schema.str_schema(),
                    core_schema.is_instance_schema(Decimal),
                ]
            ),
            serialization=core_schema.plain_serializer_function_ser_schema(
                float,
                info_arg=False,
                return_schema=core_schema.float_schema(),
            ),
        )

"""Shared model configuration and field types."""

from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel


# Decimal internally, a plain JSON number on the wire.
Money = Annotated[
    Decimal,
    PlainSerializer(float, return_type=float, when_used="json"),
]

# One stored amount: it has to fit a Numeric(14, 2) column exactly.
AMOUNT_DIGITS = 14
Amount = Annotated[Money, Field(max_digits=AMOUNT_DIGITS, decimal_places=2)]


class DomainModel(BaseModel):
    """
    Base for every model that crosses the API boundary.

    Fields are snake_case in Python and camelCase in JSON
    (``savings_rate`` <-> ``savingsRate``). Both spellings are accepted
    on input.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def to_json(self) -> dict:
        """Dump to a JSON-ready dict using the camelCase aliases."""
        return self.model_dump(mode="json", by_alias=True)

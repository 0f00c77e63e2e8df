"""
pgvector column type.

Embeddings travel as the extension's text form (`[0.1,0.2,...]`) so no
driver-level codec is needed.
"""

from collections.abc import Sequence
from typing import Any

from sqlalchemy.types import UserDefinedType


def to_vector_literal(embedding: Sequence[float]) -> str:
    """pgvector text form: `[0.1,0.2,...]`."""
    return "[" + ",".join(repr(float(x)) for x in embedding) + "]"


def parse_vector_literal(value: str) -> list[float]:
    body = value.strip().lstrip("[").rstrip("]")
    if not body:
        return []
    return [float(part) for part in body.split(",")]


class Vector(UserDefinedType):
    """`vector(dimensions)` column mapped to `list[float]`."""

    cache_ok = True

    def __init__(self, dimensions: int | None = None) -> None:
        self.dimensions = dimensions

    def get_col_spec(self, **kw: Any) -> str:
        if self.dimensions is None:
            return "vector"
        return f"vector({self.dimensions})"

    def bind_processor(self, dialect):
        def process(value):
            if value is None:
                return None
            return to_vector_literal(value)

        return process

    def result_processor(self, dialect, coltype):
        def process(value):
            if value is None or isinstance(value, list):
                return value
            return parse_vector_literal(value)

        return process

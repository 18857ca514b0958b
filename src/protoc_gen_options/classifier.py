from __future__ import annotations

import enum

from protoc_gen_options.models import Cardinality, Field, Kind, Message


class Strategy(enum.Enum):
    SCALAR = "scalar"
    ENUM = "enum"
    REPEATED = "repeated"
    MAP = "map"
    MESSAGE = "message"
    ONEOF_MEMBER = "oneof-member"


def in_real_oneof(message: Message, field: Field) -> bool:
    """Whether the field is a member of a oneof that is not synthetic."""
    if field.oneof is None:
        return False
    oneof = message.find_oneof(field.oneof)
    if oneof is None or oneof.synthetic:
        return False
    return any(member.name == field.name for member in oneof.fields)


def classify(message: Message, field: Field) -> Strategy:
    """Pick the generation strategy for a field; the first matching rule wins.

    Map must be tested before repeated since a map field is also repeated at
    the wire level. Unknown kinds fall through to SCALAR and are emitted with
    an opaque value type.
    """
    if in_real_oneof(message, field):
        return Strategy.ONEOF_MEMBER
    if field.cardinality is Cardinality.MAP:
        return Strategy.MAP
    if field.cardinality is Cardinality.REPEATED:
        return Strategy.REPEATED
    if field.kind is Kind.ENUM:
        return Strategy.ENUM
    if field.kind is Kind.MESSAGE:
        return Strategy.MESSAGE
    return Strategy.SCALAR

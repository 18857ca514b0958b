from __future__ import annotations

from collections import Counter
from typing import Dict, Iterable, Mapping, Optional

from protoc_gen_options.models import Cardinality, Field, Kind, Message


class CollisionMap:
    """Occurrence count of every option stem across a schema set."""

    def __init__(self, counts: Mapping[str, int]):
        self._counts: Dict[str, int] = dict(counts)

    def count(self, field_name: str) -> int:
        return self._counts.get(field_name, 0)

    def is_ambiguous(self, field_name: str) -> bool:
        return self.count(field_name) > 1

    def ambiguous_names(self) -> set:
        return {name for name, count in self._counts.items() if count > 1}

    def __repr__(self) -> str:
        return f"CollisionMap({self._counts!r})"


def convenience_stem(field: Field) -> Optional[str]:
    """Stem of the ``WithNew`` option a field gets, or None when it gets none."""
    if field.kind is Kind.MESSAGE and field.cardinality is Cardinality.SINGULAR and field.type_ref is not None:
        return "New" + field.name
    return None


def analyze_collisions(messages: Iterable[Message]) -> CollisionMap:
    """Count in how many messages each option stem occurs.

    The stems of a message are its field names plus ``New<Field>`` for every
    field that gets a ``WithNew`` option. A stem is counted once per message,
    so only stems shared between two or more messages end up ambiguous.
    Message names themselves are not counted.
    """
    counts: Counter = Counter()
    for message in messages:
        stems = {f.name for f in message.fields}
        stems.update(s for s in map(convenience_stem, message.fields) if s is not None)
        counts.update(stems)
    return CollisionMap(counts)

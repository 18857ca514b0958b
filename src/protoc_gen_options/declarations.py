"""Structured output of the generator.

Every generated function or type is a node with typed parameters and a body
descriptor. Nothing here knows how the nodes are spelled in the target
language; that is the job of the renderer in ``protoc_gen_options.generator``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple, Union

from protoc_gen_options.classifier import Strategy
from protoc_gen_options.models import Kind, Package


@dataclass(frozen=True)
class Ref:
    """A reference to a symbol owned by ``package``.

    ``qualifier`` is set only when the symbol lives in a package other than
    the one being generated.
    """

    name: str
    package: Package
    qualifier: Optional[str] = None


# Value types


@dataclass(frozen=True)
class ScalarType:
    kind: Kind


@dataclass(frozen=True)
class NamedType:
    kind: Kind  # Kind.ENUM or Kind.MESSAGE
    ref: Ref


@dataclass(frozen=True)
class OpaqueType:
    pass


@dataclass(frozen=True)
class ListType:
    element: ValueType


@dataclass(frozen=True)
class MapType:
    key: ValueType
    value: ValueType


@dataclass(frozen=True)
class OptionFuncType:
    """The option-function type of a (possibly foreign) message."""

    ref: Ref


ValueType = Union[ScalarType, NamedType, OpaqueType, ListType, MapType, OptionFuncType]


@dataclass(frozen=True)
class Param:
    name: str
    type: ValueType
    variadic: bool = False


# Setter bodies


@dataclass(frozen=True)
class AssignField:
    """``m.<field> = <param>``, optionally through the presence wrapper of ``wrap``."""

    field: str
    wrap: Optional[Kind] = None


@dataclass(frozen=True)
class AssignConstructed:
    """``m.<field> = <constructor>(<options>...)``."""

    field: str
    constructor: Ref
    forward_options: bool = True


@dataclass(frozen=True)
class AssignVariant:
    """``m.<oneof> = <variant>{<member>: value}``.

    The value is the setter's parameter, or a freshly constructed instance
    when ``constructor`` is set.
    """

    oneof: str
    variant: Ref
    member: str
    constructor: Optional[Ref] = None
    forward_options: bool = True


Body = Union[AssignField, AssignConstructed, AssignVariant]


# Declarations


@dataclass(frozen=True)
class Constructor:
    name: str
    message: str
    option_type: str


@dataclass(frozen=True)
class BulkApply:
    name: str
    message: str
    option_type: str


@dataclass(frozen=True)
class OptionType:
    name: str
    message: str


@dataclass(frozen=True)
class Setter:
    name: str
    message: str
    option_type: str
    field: str
    strategy: Strategy
    params: Tuple[Param, ...]
    body: Body

    @property
    def is_convenience(self) -> bool:
        if isinstance(self.body, AssignConstructed):
            return True
        return isinstance(self.body, AssignVariant) and self.body.constructor is not None


Declaration = Union[Constructor, BulkApply, OptionType, Setter]


@dataclass
class DeclarationSequence:
    """Everything generated for one schema file, in emission order."""

    source: str
    package: Package
    declarations: List[Declaration] = field(default_factory=list)
    imports: List[Package] = field(default_factory=list)

    def names(self) -> List[str]:
        return [d.name for d in self.declarations]

    def find(self, name: str) -> Optional[Declaration]:
        for decl in self.declarations:
            if decl.name == name:
                return decl
        return None


def _type_refs(value_type: ValueType) -> Iterator[Ref]:
    if isinstance(value_type, (NamedType, OptionFuncType)):
        yield value_type.ref
    elif isinstance(value_type, ListType):
        yield from _type_refs(value_type.element)
    elif isinstance(value_type, MapType):
        yield from _type_refs(value_type.key)
        yield from _type_refs(value_type.value)


def refs_of(decl: Declaration) -> Iterator[Ref]:
    """All symbol references a declaration makes."""
    if not isinstance(decl, Setter):
        return
    for param in decl.params:
        yield from _type_refs(param.type)
    body = decl.body
    if isinstance(body, AssignConstructed):
        yield body.constructor
    elif isinstance(body, AssignVariant):
        yield body.variant
        if body.constructor is not None:
            yield body.constructor


def uses_presence_wrapper(decl: Declaration) -> bool:
    return isinstance(decl, Setter) and isinstance(decl.body, AssignField) and decl.body.wrap is not None

"""Execute declaration sequences against plain Python instances.

``bind`` turns generated declarations into callables with the same
semantics the rendered Go code has, which makes the behaviour of a
declaration sequence checkable without compiling anything::

    namespaces = bind(generate(schema))
    ns = namespaces[package]
    msg = ns["NewEnvelope"](ns["WithText"]("a"))
    ns["ApplyEnvelopeOptions"](msg, ns["WithCount"](5))
    assert msg.values["Choice"] == Variant("Count", 5)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Tuple

from protoc_gen_options.declarations import (
    AssignConstructed,
    AssignField,
    AssignVariant,
    BulkApply,
    Constructor,
    DeclarationSequence,
    MapType,
    Ref,
    Setter,
)
from protoc_gen_options.models import Package

Option = Callable[["Instance"], None]
Namespace = Dict[str, Callable[..., Any]]


class BindingError(Exception):
    """Raised when a declaration refers to a constructor that was never bound."""


@dataclass
class Instance:
    """A message value: its type name and the fields set so far."""

    type_name: str
    values: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Variant:
    """The populated member of a oneof slot."""

    member: str
    value: Any


class _Registry:
    def __init__(self) -> None:
        self.namespaces: Dict[Package, Namespace] = {}

    def namespace(self, package: Package) -> Namespace:
        return self.namespaces.setdefault(package, {})

    def resolve(self, ref: Ref) -> Callable[..., Any]:
        try:
            return self.namespaces[ref.package][ref.name]
        except KeyError:
            raise BindingError(
                f"{ref.name} is not bound in package {ref.package.import_path!r}"
            ) from None


def _bind_constructor(decl: Constructor) -> Callable[..., Instance]:
    def construct(*opts: Option) -> Instance:
        instance = Instance(decl.message)
        for opt in opts:
            opt(instance)
        return instance

    construct.__name__ = decl.name
    return construct


def _bind_apply(decl: BulkApply) -> Callable[..., None]:
    def apply(instance: Instance, *opts: Option) -> None:
        for opt in opts:
            opt(instance)

    apply.__name__ = decl.name
    return apply


def _setter_value(decl: Setter, registry: _Registry, args: Tuple[Any, ...]) -> Any:
    body = decl.body
    constructor = getattr(body, "constructor", None)
    if constructor is not None:
        build = registry.resolve(constructor)
        return build(*args) if body.forward_options else build()
    param = decl.params[0]
    if param.variadic:
        return list(args)
    if isinstance(param.type, MapType):
        return dict(args[0])
    return args[0]


def _bind_setter(decl: Setter, registry: _Registry) -> Callable[..., Option]:
    body = decl.body
    variadic = any(p.variadic for p in decl.params)

    def setter(*args: Any) -> Option:
        if not variadic and len(args) != len(decl.params):
            raise TypeError(
                f"{decl.name}() takes {len(decl.params)} argument(s) ({len(args)} given)"
            )

        def option(instance: Instance) -> None:
            value = _setter_value(decl, registry, args)
            if isinstance(body, AssignVariant):
                instance.values[body.oneof] = Variant(body.member, value)
            elif isinstance(body, (AssignField, AssignConstructed)):
                instance.values[body.field] = value

        return option

    setter.__name__ = decl.name
    return setter


def bind(sequences: Iterable[DeclarationSequence]) -> Dict[Package, Namespace]:
    """Bind every declaration to a callable, one namespace per package.

    Constructor references are resolved when an option is applied, so
    sequences may refer to each other in any order.
    """
    registry = _Registry()
    for sequence in sequences:
        namespace = registry.namespace(sequence.package)
        for decl in sequence.declarations:
            if isinstance(decl, Constructor):
                namespace[decl.name] = _bind_constructor(decl)
            elif isinstance(decl, BulkApply):
                namespace[decl.name] = _bind_apply(decl)
            elif isinstance(decl, Setter):
                namespace[decl.name] = _bind_setter(decl, registry)
    return registry.namespaces

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from protoc_gen_options import naming
from protoc_gen_options.classifier import Strategy, classify
from protoc_gen_options.collisions import CollisionMap
from protoc_gen_options.config import GeneratorConfig
from protoc_gen_options.declarations import (
    AssignConstructed,
    AssignField,
    AssignVariant,
    BulkApply,
    Constructor,
    Declaration,
    ListType,
    MapType,
    NamedType,
    OpaqueType,
    OptionFuncType,
    OptionType,
    Param,
    ScalarType,
    Setter,
    ValueType,
)
from protoc_gen_options.models import Cardinality, Field, Kind, Message, Package, SchemaSet, TypeRef

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Context:
    message: Message
    collisions: CollisionMap
    schema: Optional[SchemaSet]
    config: GeneratorConfig

    @property
    def target(self) -> Package:
        return self.message.package

    @property
    def option_type(self) -> str:
        return naming.option_type_name(self.message.name)

    def debug(self, msg: str, *args) -> None:
        if self.config.debug:
            logger.debug(msg, *args)


def _value_type(kind: Kind, ref: Optional[TypeRef], target: Package) -> ValueType:
    if kind.is_scalar:
        return ScalarType(kind)
    if kind in (Kind.ENUM, Kind.MESSAGE) and ref is not None:
        return NamedType(kind, naming.type_ref(ref, target))
    return OpaqueType()


def element_type(field: Field, target: Package) -> ValueType:
    """Type of a single element of the field, ignoring its cardinality."""
    return _value_type(field.kind, field.type_ref, target)


def field_type(field: Field, target: Package) -> ValueType:
    if field.cardinality is Cardinality.MAP:
        if field.entry is None:
            return OpaqueType()
        key, value = field.entry
        return MapType(element_type(key, target), element_type(value, target))
    if field.cardinality is Cardinality.REPEATED:
        return ListType(element_type(field, target))
    return element_type(field, target)


def _setter(ctx: _Context, name: str, field: Field, strategy: Strategy, params, body) -> Setter:
    return Setter(
        name=name,
        message=ctx.message.name,
        option_type=ctx.option_type,
        field=field.name,
        strategy=strategy,
        params=tuple(params),
        body=body,
    )


def _nested_message(ctx: _Context, ref: TypeRef) -> Optional[Message]:
    if ctx.schema is None:
        return None
    return ctx.schema.find_message(ref.full_name)


def _convenience_params(ctx: _Context, field: Field):
    """Parameters and option forwarding for a ``WithNew`` option.

    Returns None when the nested type has no constructor to call.
    """
    nested = _nested_message(ctx, field.type_ref)
    if nested is not None and nested.skip_init:
        ctx.debug("%s.%s: %s has no constructor, skipping WithNew option",
                  ctx.message.name, field.name, nested.name)
        return None
    if nested is not None and nested.optionless:
        return (), False
    opts = Param("opts", OptionFuncType(naming.option_type_ref(field.type_ref, ctx.target)), variadic=True)
    return (opts,), True


def _emit_scalar(ctx: _Context, field: Field) -> List[Declaration]:
    wrap = None
    if field.nullable and field.kind.is_scalar and field.kind is not Kind.BYTES:
        wrap = field.kind
    value = Param("value", element_type(field, ctx.target))
    name = naming.option_name(ctx.message, field, ctx.collisions)
    return [_setter(ctx, name, field, Strategy.SCALAR, [value], AssignField(field.name, wrap))]


def _emit_enum(ctx: _Context, field: Field) -> List[Declaration]:
    value = Param("value", element_type(field, ctx.target))
    name = naming.option_name(ctx.message, field, ctx.collisions)
    return [_setter(ctx, name, field, Strategy.ENUM, [value], AssignField(field.name))]


def _emit_repeated(ctx: _Context, field: Field) -> List[Declaration]:
    values = Param("values", element_type(field, ctx.target), variadic=True)
    name = naming.option_name(ctx.message, field, ctx.collisions)
    return [_setter(ctx, name, field, Strategy.REPEATED, [values], AssignField(field.name))]


def _emit_map(ctx: _Context, field: Field) -> List[Declaration]:
    value = Param("value", field_type(field, ctx.target))
    name = naming.option_name(ctx.message, field, ctx.collisions)
    return [_setter(ctx, name, field, Strategy.MAP, [value], AssignField(field.name))]


def _emit_message(ctx: _Context, field: Field) -> List[Declaration]:
    value = Param("value", element_type(field, ctx.target))
    name = naming.option_name(ctx.message, field, ctx.collisions)
    decls: List[Declaration] = [
        _setter(ctx, name, field, Strategy.MESSAGE, [value], AssignField(field.name)),
    ]
    if field.type_ref is None:
        return decls

    convenience = _convenience_params(ctx, field)
    if convenience is not None:
        params, forward = convenience
        body = AssignConstructed(
            field=field.name,
            constructor=naming.constructor_ref(field.type_ref, ctx.target),
            forward_options=forward,
        )
        new_name = naming.new_option_name(ctx.message, field, ctx.collisions)
        decls.append(_setter(ctx, new_name, field, Strategy.MESSAGE, params, body))
    return decls


def _emit_oneof_member(ctx: _Context, field: Field) -> List[Declaration]:
    oneof = ctx.message.find_oneof(field.oneof)
    variant = naming.qualify(naming.variant_name(ctx.message, field), ctx.target, ctx.target)

    if field.cardinality is Cardinality.REPEATED:
        param = Param("values", element_type(field, ctx.target), variadic=True)
    else:
        param = Param("value", field_type(field, ctx.target))
    name = naming.option_name(ctx.message, field, ctx.collisions)
    body = AssignVariant(oneof=oneof.name, variant=variant, member=field.name)
    decls: List[Declaration] = [_setter(ctx, name, field, Strategy.ONEOF_MEMBER, [param], body)]

    if field.kind is not Kind.MESSAGE or field.cardinality is not Cardinality.SINGULAR or field.type_ref is None:
        return decls

    convenience = _convenience_params(ctx, field)
    if convenience is not None:
        params, forward = convenience
        body = AssignVariant(
            oneof=oneof.name,
            variant=variant,
            member=field.name,
            constructor=naming.constructor_ref(field.type_ref, ctx.target),
            forward_options=forward,
        )
        new_name = naming.new_option_name(ctx.message, field, ctx.collisions)
        decls.append(_setter(ctx, new_name, field, Strategy.ONEOF_MEMBER, params, body))
    return decls


STRATEGY_EMITTERS: Dict[Strategy, Callable[[_Context, Field], List[Declaration]]] = {
    Strategy.SCALAR: _emit_scalar,
    Strategy.ENUM: _emit_enum,
    Strategy.REPEATED: _emit_repeated,
    Strategy.MAP: _emit_map,
    Strategy.MESSAGE: _emit_message,
    Strategy.ONEOF_MEMBER: _emit_oneof_member,
}


def emit_message(
    message: Message,
    collisions: CollisionMap,
    schema: Optional[SchemaSet] = None,
    config: Optional[GeneratorConfig] = None,
) -> List[Declaration]:
    """Produce the full declaration set of one message.

    ``schema`` is used to look up the flags of nested message types; without
    it every nested type is assumed to have a constructor and options.
    """
    ctx = _Context(message, collisions, schema, config or GeneratorConfig())
    option_type = ctx.option_type

    decls: List[Declaration] = []
    if not message.skip_init:
        decls.append(Constructor(naming.constructor_name(message.name), message.name, option_type))
    if not message.optionless:
        decls.append(BulkApply(naming.apply_name(message.name), message.name, option_type))
    decls.append(OptionType(option_type, message.name))

    for field in message.fields:
        strategy = classify(message, field)
        ctx.debug("%s.%s -> %s", message.name, field.name, strategy.value)
        decls.extend(STRATEGY_EMITTERS[strategy](ctx, field))
    return decls

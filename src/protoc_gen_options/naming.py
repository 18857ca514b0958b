"""Names of everything the generator emits.

Option names follow ``With<Field>``. When the field name occurs in more than
one message of the schema set the owning message is appended, giving
``With<Field>For<Message>``; without that, two messages generated into the
same package would both export ``WithName``.
"""

from __future__ import annotations

from protoc_gen_options.collisions import CollisionMap
from protoc_gen_options.declarations import Ref
from protoc_gen_options.models import Field, Message, Package, TypeRef


def option_name(message: Message, field: Field, collisions: CollisionMap) -> str:
    if collisions.is_ambiguous(field.name):
        return f"With{field.name}For{message.name}"
    return "With" + field.name


def new_option_name(message: Message, field: Field, collisions: CollisionMap) -> str:
    """Name of the option that builds a fresh nested instance in place.

    The suffix rule applies when either the field name or ``New<Field>`` is
    ambiguous. A field of the same message spelled ``New<Field>`` already owns
    the plain name, so the convenience option then takes a trailing ``_``.
    """
    stem = "New" + field.name
    if collisions.is_ambiguous(field.name) or collisions.is_ambiguous(stem):
        stem += "For" + message.name
    name = "With" + stem
    taken = {option_name(message, f, collisions) for f in message.fields}
    while name in taken:
        name += "_"
    return name


def constructor_name(message_name: str) -> str:
    return f"New{message_name}"


def apply_name(message_name: str) -> str:
    return f"Apply{message_name}Options"


def option_type_name(message_name: str) -> str:
    return f"{message_name}Option"


def variant_name(message: Message, field: Field) -> str:
    """Name of the wrapper type holding ``field`` inside its oneof slot."""
    name = f"{message.name}_{field.name}"
    while name in message.nested_type_names:
        name += "_"
    return name


def qualify(name: str, owner: Package, target: Package) -> Ref:
    """Reference ``name`` owned by ``owner`` from code generated into ``target``."""
    if owner == target:
        return Ref(name=name, package=owner)
    return Ref(name=name, package=owner, qualifier=owner.name)


def type_ref(ref: TypeRef, target: Package) -> Ref:
    return qualify(ref.name, ref.package, target)


def constructor_ref(ref: TypeRef, target: Package) -> Ref:
    return qualify(constructor_name(ref.name), ref.package, target)


def option_type_ref(ref: TypeRef, target: Package) -> Ref:
    return qualify(option_type_name(ref.name), ref.package, target)

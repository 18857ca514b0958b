from __future__ import annotations

import posixpath
from pathlib import Path
from typing import Dict, List

from jinja2 import Environment, FileSystemLoader

from protoc_gen_options.config import PATHS_SOURCE_RELATIVE, ConfigError, GeneratorConfig
from protoc_gen_options.declarations import (
    AssignConstructed,
    AssignField,
    AssignVariant,
    BulkApply,
    Constructor,
    Declaration,
    DeclarationSequence,
    ListType,
    MapType,
    NamedType,
    OpaqueType,
    OptionFuncType,
    OptionType,
    Param,
    Ref,
    ScalarType,
    Setter,
    ValueType,
    uses_presence_wrapper,
)
from protoc_gen_options.models import Kind, SchemaFile

PROTO_RUNTIME_IMPORT = "google.golang.org/protobuf/proto"

GO_SCALAR_TYPES: Dict[Kind, str] = {
    Kind.BOOL: "bool",
    Kind.INT32: "int32",
    Kind.INT64: "int64",
    Kind.UINT32: "uint32",
    Kind.UINT64: "uint64",
    Kind.FLOAT32: "float32",
    Kind.FLOAT64: "float64",
    Kind.STRING: "string",
    Kind.BYTES: "[]byte",
}

# Helpers of the proto runtime that return a pointer to their argument,
# e.g. proto.String for *string fields.
PRESENCE_HELPERS: Dict[Kind, str] = {
    Kind.BOOL: "Bool",
    Kind.INT32: "Int32",
    Kind.INT64: "Int64",
    Kind.UINT32: "Uint32",
    Kind.UINT64: "Uint64",
    Kind.FLOAT32: "Float32",
    Kind.FLOAT64: "Float64",
    Kind.STRING: "String",
}


def _get_template_env() -> Environment:
    template_dir = Path(__file__).parent.parent / "templates"
    return Environment(
        loader=FileSystemLoader(str(template_dir)),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )


def go_ref(ref: Ref) -> str:
    if ref.qualifier:
        return f"{ref.qualifier}.{ref.name}"
    return ref.name


def go_type(value_type: ValueType) -> str:
    if isinstance(value_type, ScalarType):
        return GO_SCALAR_TYPES[value_type.kind]
    if isinstance(value_type, NamedType):
        if value_type.kind is Kind.MESSAGE:
            return "*" + go_ref(value_type.ref)
        return go_ref(value_type.ref)
    if isinstance(value_type, ListType):
        return "[]" + go_type(value_type.element)
    if isinstance(value_type, MapType):
        return f"map[{go_type(value_type.key)}]{go_type(value_type.value)}"
    if isinstance(value_type, OptionFuncType):
        return go_ref(value_type.ref)
    if isinstance(value_type, OpaqueType):
        return "interface{}"
    raise TypeError(f"Unsupported value type: {value_type!r}")


def _go_param(param: Param) -> str:
    prefix = "..." if param.variadic else ""
    return f"{param.name} {prefix}{go_type(param.type)}"


def _value_expr(setter: Setter) -> str:
    """Expression producing the value a setter stores."""
    body = setter.body
    constructor = None
    forward = False
    if isinstance(body, AssignConstructed):
        constructor, forward = body.constructor, body.forward_options
    elif isinstance(body, AssignVariant) and body.constructor is not None:
        constructor, forward = body.constructor, body.forward_options

    if constructor is not None:
        args = ", ".join(f"{p.name}..." for p in setter.params) if forward else ""
        return f"{go_ref(constructor)}({args})"

    value = setter.params[0].name
    if isinstance(body, AssignField) and body.wrap is not None:
        return f"proto.{PRESENCE_HELPERS[body.wrap]}({value})"
    return value


def _setter_doc(setter: Setter) -> str:
    body = setter.body
    if isinstance(body, AssignConstructed):
        return (
            f"{setter.name} sets the {setter.field} field of {setter.message} "
            f"to a new value built by {go_ref(body.constructor)}."
        )
    if isinstance(body, AssignVariant):
        if body.constructor is not None:
            return (
                f"{setter.name} sets the {body.oneof} oneof of {setter.message} "
                f"to {setter.field}, built by {go_ref(body.constructor)}."
            )
        return f"{setter.name} sets the {setter.field} variant of the {body.oneof} oneof of {setter.message}."
    return f"{setter.name} sets the {setter.field} field of {setter.message}."


def _build_decl(decl: Declaration) -> Dict:
    if isinstance(decl, Constructor):
        return {
            "kind": "constructor",
            "name": decl.name,
            "message": decl.message,
            "option_type": decl.option_type,
        }
    if isinstance(decl, BulkApply):
        return {
            "kind": "apply",
            "name": decl.name,
            "message": decl.message,
            "option_type": decl.option_type,
        }
    if isinstance(decl, OptionType):
        return {"kind": "option_type", "name": decl.name, "message": decl.message}

    entry = {
        "kind": "setter",
        "name": decl.name,
        "message": decl.message,
        "option_type": decl.option_type,
        "doc": _setter_doc(decl),
        "params": ", ".join(_go_param(p) for p in decl.params),
        "value": _value_expr(decl),
    }
    body = decl.body
    if isinstance(body, AssignVariant):
        entry["oneof"] = body.oneof
        entry["variant"] = go_ref(body.variant)
        entry["member"] = body.member
    else:
        entry["field"] = body.field
    return entry


def render(sequence: DeclarationSequence) -> str:
    """Render one declaration sequence as a Go source file."""
    env = _get_template_env()
    template = env.get_template("options.go.j2")

    imports: List[Dict[str, str]] = []
    if any(uses_presence_wrapper(d) for d in sequence.declarations):
        imports.append({"alias": "", "path": PROTO_RUNTIME_IMPORT})
    for package in sequence.imports:
        imports.append({"alias": package.name, "path": package.import_path})

    return template.render(
        source=sequence.source,
        package_name=sequence.package.name,
        imports=imports,
        declarations=[_build_decl(d) for d in sequence.declarations],
    )


def output_filename(schema_file: SchemaFile, config: GeneratorConfig) -> str:
    """Output path of a schema file, following protoc-gen-go's ``paths``/``module`` rules."""
    stem = schema_file.name
    ext = posixpath.splitext(stem)[1]
    if ext:
        stem = stem[: -len(ext)]

    if config.paths == PATHS_SOURCE_RELATIVE:
        prefix = stem
    else:
        prefix = posixpath.join(schema_file.package.import_path, posixpath.basename(stem))
        if config.module:
            module = config.module.rstrip("/") + "/"
            if not prefix.startswith(module):
                raise ConfigError(
                    f"{schema_file.name}: output path {prefix!r} does not match module prefix {config.module!r}"
                )
            prefix = prefix[len(module):]
    return prefix + config.suffix

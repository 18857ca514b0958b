"""Build the schema model from protobuf descriptors.

Identifiers follow protoc-gen-go so that generated options line up with the
Go structs they mutate: CamelCase field names, ``Outer_Inner`` for nested
types, ``_`` suffixes for names clashing with generated methods.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from google.protobuf import descriptor_pb2 as d2

from protoc_gen_options.config import GeneratorConfig
from protoc_gen_options.models import (
    Cardinality,
    Field,
    Kind,
    Message,
    MessageFlag,
    Oneof,
    Package,
    SchemaFile,
    SchemaSet,
    TypeRef,
)

logger = logging.getLogger(__name__)

FDP = d2.FieldDescriptorProto

KIND_MAP: Dict[int, Kind] = {
    FDP.TYPE_BOOL: Kind.BOOL,
    FDP.TYPE_INT32: Kind.INT32,
    FDP.TYPE_SINT32: Kind.INT32,
    FDP.TYPE_SFIXED32: Kind.INT32,
    FDP.TYPE_UINT32: Kind.UINT32,
    FDP.TYPE_FIXED32: Kind.UINT32,
    FDP.TYPE_INT64: Kind.INT64,
    FDP.TYPE_SINT64: Kind.INT64,
    FDP.TYPE_SFIXED64: Kind.INT64,
    FDP.TYPE_UINT64: Kind.UINT64,
    FDP.TYPE_FIXED64: Kind.UINT64,
    FDP.TYPE_FLOAT: Kind.FLOAT32,
    FDP.TYPE_DOUBLE: Kind.FLOAT64,
    FDP.TYPE_STRING: Kind.STRING,
    FDP.TYPE_BYTES: Kind.BYTES,
    FDP.TYPE_ENUM: Kind.ENUM,
    FDP.TYPE_MESSAGE: Kind.MESSAGE,
}

# Methods every generated Go message has; fields may not shadow them.
RESERVED_GO_NAMES = (
    "Reset",
    "String",
    "ProtoMessage",
    "Marshal",
    "Unmarshal",
    "ExtensionRangeArray",
    "ExtensionMap",
    "Descriptor",
)

# FileDescriptorProto.message_type / DescriptorProto.nested_type field numbers,
# used as source_code_info path components.
_MESSAGE_TYPE_PATH = 4
_NESTED_TYPE_PATH = 3


class SchemaError(Exception):
    """Raised when descriptors are inconsistent and cannot form a schema."""


def go_camel_case(name: str) -> str:
    """Convert a proto identifier to an exported Go identifier.

    Same rules as protoc-gen-go: ``foo_bar`` -> ``FooBar``, ``foo.bar`` ->
    ``FooBar``, a leading underscore becomes ``X``, digits are kept.
    """
    out: List[str] = []
    i = 0
    while i < len(name):
        c = name[i]
        nxt = name[i + 1] if i + 1 < len(name) else ""
        if c == "." and nxt.islower() and nxt.isascii():
            pass
        elif c == ".":
            out.append("_")
        elif c == "_" and (i == 0 or name[i - 1] == "."):
            out.append("X")
        elif c == "_" and nxt.islower() and nxt.isascii():
            pass
        elif c.isdigit():
            out.append(c)
        else:
            out.append(c.upper() if c.islower() and c.isascii() else c)
            while i + 1 < len(name) and name[i + 1].islower() and name[i + 1].isascii():
                i += 1
                out.append(name[i])
        i += 1
    return "".join(out)


def _go_sanitized(name: str) -> str:
    name = re.sub(r"[^0-9A-Za-z_]", "_", name)
    if not name or name[0].isdigit():
        name = "_" + name
    return name


def go_package(file_proto: d2.FileDescriptorProto) -> Package:
    """Derive the Go package of a file from its ``go_package`` option.

    ``go_package`` may be ``import/path`` or ``import/path;name``. Files
    without it fall back to their directory and proto package.
    """
    option = file_proto.options.go_package
    if option:
        if ";" in option:
            import_path, name = option.split(";", 1)
        else:
            import_path = option
            name = option.rstrip("/").split("/")[-1]
        return Package(import_path=import_path, name=_go_sanitized(name))

    import_path = os.path.dirname(file_proto.name) or "."
    if file_proto.package:
        name = file_proto.package.split(".")[-1]
    else:
        name = Path(file_proto.name).stem
    return Package(import_path=import_path, name=_go_sanitized(name))


@dataclass
class _TypeInfo:
    full_name: str
    go_name: str
    package: Package
    descriptor: Optional[d2.DescriptorProto] = None

    @property
    def is_map_entry(self) -> bool:
        return self.descriptor is not None and self.descriptor.options.map_entry

    def ref(self) -> TypeRef:
        return TypeRef(full_name=self.full_name.lstrip("."), name=self.go_name, package=self.package)


def _index_types(protos: Sequence[d2.FileDescriptorProto]) -> Dict[str, _TypeInfo]:
    """Map every message and enum full name (``.pkg.Outer.Inner``) to its Go identity."""
    index: Dict[str, _TypeInfo] = {}

    def visit(desc: d2.DescriptorProto, scope: str, go_prefix: str, package: Package) -> None:
        full_name = f"{scope}.{desc.name}"
        go_name = go_prefix + go_camel_case(desc.name)
        index[full_name] = _TypeInfo(full_name, go_name, package, desc)
        for enum in desc.enum_type:
            index[f"{full_name}.{enum.name}"] = _TypeInfo(
                f"{full_name}.{enum.name}", f"{go_name}_{go_camel_case(enum.name)}", package
            )
        for nested in desc.nested_type:
            visit(nested, full_name, go_name + "_", package)

    for file_proto in protos:
        package = go_package(file_proto)
        scope = f".{file_proto.package}" if file_proto.package else ""
        for enum in file_proto.enum_type:
            index[f"{scope}.{enum.name}"] = _TypeInfo(
                f"{scope}.{enum.name}", go_camel_case(enum.name), package
            )
        for desc in file_proto.message_type:
            visit(desc, scope, "", package)
    return index


def _leading_comments(file_proto: d2.FileDescriptorProto) -> Dict[Tuple[int, ...], str]:
    comments: Dict[Tuple[int, ...], str] = {}
    for location in file_proto.source_code_info.location:
        if location.leading_comments:
            comments[tuple(location.path)] = location.leading_comments
    return comments


def parse_flags(comment: str, config: GeneratorConfig) -> MessageFlag:
    """Read behavioral flags from a message's leading comment."""
    tokens = comment.split()
    flags = MessageFlag.NONE
    if config.optionless_marker in tokens:
        flags |= MessageFlag.OPTIONLESS
    if config.skip_init_marker in tokens:
        flags |= MessageFlag.SKIP_INIT
    return flags


class _NameAllocator:
    """Hands out Go field names that do not clash within one message."""

    def __init__(self) -> None:
        self._used: Dict[str, bool] = {name: True for name in RESERVED_GO_NAMES}

    def unique(self, name: str, has_getter: bool) -> str:
        while self._used.get(name) or (has_getter and self._used.get("Get" + name)):
            name += "_"
        self._used[name] = True
        self._used["Get" + name] = has_getter
        return name


def _field_presence(features: d2.FeatureSet) -> Optional[int]:
    if features.HasField("field_presence"):
        return features.field_presence
    return None


class _FileParser:
    def __init__(
        self,
        file_proto: d2.FileDescriptorProto,
        index: Dict[str, _TypeInfo],
        config: GeneratorConfig,
    ):
        self.file_proto = file_proto
        self.index = index
        self.config = config
        self.package = go_package(file_proto)
        self.comments = _leading_comments(file_proto)
        self.scope = f".{file_proto.package}" if file_proto.package else ""

    def parse(self, generate: bool) -> SchemaFile:
        messages: List[Message] = []
        for i, desc in enumerate(self.file_proto.message_type):
            self._parse_message(desc, self.scope, (_MESSAGE_TYPE_PATH, i), [], messages)
        return SchemaFile(
            name=self.file_proto.name,
            proto_package=self.file_proto.package,
            package=self.package,
            messages=messages,
            generate=generate,
        )

    def _lookup(self, type_name: str, context: str) -> _TypeInfo:
        info = self.index.get(type_name)
        if info is None:
            raise SchemaError(
                f"Unresolved type '{type_name}' referenced by '{context}' in {self.file_proto.name}"
            )
        return info

    def _has_presence(self, fd: d2.FieldDescriptorProto, parents: List[d2.DescriptorProto]) -> bool:
        if fd.label == FDP.LABEL_REPEATED or fd.type in (FDP.TYPE_MESSAGE, FDP.TYPE_GROUP, FDP.TYPE_BYTES):
            return False
        if fd.proto3_optional:
            return True
        if fd.HasField("oneof_index"):
            return False
        syntax = self.file_proto.syntax or "proto2"
        if syntax == "proto3":
            return False
        if syntax == "editions":
            presence = _field_presence(fd.options.features)
            for parent in reversed(parents):
                if presence is None:
                    presence = _field_presence(parent.options.features)
            if presence is None:
                presence = _field_presence(self.file_proto.options.features)
            return presence != d2.FeatureSet.IMPLICIT
        return True

    def _entry_field(self, fd: d2.FieldDescriptorProto, owner: str) -> Field:
        kind = KIND_MAP.get(fd.type, Kind.UNKNOWN)
        ref = None
        if kind in (Kind.ENUM, Kind.MESSAGE):
            ref = self._lookup(fd.type_name, owner).ref()
        return Field(
            name=go_camel_case(fd.name),
            proto_name=fd.name,
            number=fd.number,
            kind=kind,
            type_ref=ref,
        )

    def _parse_field(
        self,
        fd: d2.FieldDescriptorProto,
        go_name: str,
        desc: d2.DescriptorProto,
        parents: List[d2.DescriptorProto],
        full_name: str,
    ) -> Field:
        kind = KIND_MAP.get(fd.type, Kind.UNKNOWN)
        context = f"{full_name}.{fd.name}"
        cardinality = Cardinality.REPEATED if fd.label == FDP.LABEL_REPEATED else Cardinality.SINGULAR
        ref: Optional[TypeRef] = None
        entry: Optional[Tuple[Field, Field]] = None

        if kind in (Kind.ENUM, Kind.MESSAGE):
            info = self._lookup(fd.type_name, context)
            if kind is Kind.MESSAGE and info.is_map_entry and cardinality is Cardinality.REPEATED:
                entry_fields = sorted(info.descriptor.field, key=lambda f: f.number)
                if len(entry_fields) != 2:
                    raise SchemaError(
                        f"Map field '{context}' has entry type {info.full_name} "
                        f"with {len(entry_fields)} field(s), expected 2"
                    )
                cardinality = Cardinality.MAP
                entry = (
                    self._entry_field(entry_fields[0], info.full_name),
                    self._entry_field(entry_fields[1], info.full_name),
                )
            else:
                ref = info.ref()

        oneof = None
        if fd.HasField("oneof_index"):
            if fd.oneof_index >= len(desc.oneof_decl):
                raise SchemaError(f"Field '{context}' has oneof_index {fd.oneof_index} out of range")
            oneof = desc.oneof_decl[fd.oneof_index].name

        return Field(
            name=go_name,
            proto_name=fd.name,
            number=fd.number,
            kind=kind,
            cardinality=cardinality,
            type_ref=ref,
            oneof=oneof,
            nullable=self._has_presence(fd, parents + [desc]),
            entry=entry,
        )

    def _parse_message(
        self,
        desc: d2.DescriptorProto,
        scope: str,
        path: Tuple[int, ...],
        parents: List[d2.DescriptorProto],
        out: List[Message],
    ) -> None:
        full_name = f"{scope}.{desc.name}"
        info = self.index[full_name]
        if info.is_map_entry:
            return

        names = _NameAllocator()
        oneof_names: Dict[int, str] = {}
        fields: List[Field] = []
        for fd in desc.field:
            go_name = names.unique(go_camel_case(fd.name), has_getter=True)
            if fd.HasField("oneof_index") and fd.oneof_index not in oneof_names:
                if fd.oneof_index < len(desc.oneof_decl):
                    oneof_names[fd.oneof_index] = names.unique(
                        go_camel_case(desc.oneof_decl[fd.oneof_index].name), has_getter=False
                    )
            fields.append(self._parse_field(fd, go_name, desc, parents, full_name))

        oneofs: List[Oneof] = []
        for i, decl in enumerate(desc.oneof_decl):
            members = tuple(f for f in fields if f.oneof == decl.name)
            synthetic = bool(members) and all(
                fd.proto3_optional for fd in desc.field if fd.HasField("oneof_index") and fd.oneof_index == i
            )
            oneofs.append(Oneof(
                name=oneof_names.get(i, go_camel_case(decl.name)),
                proto_name=decl.name,
                fields=members,
                synthetic=synthetic,
            ))

        nested_names: Set[str] = {
            f"{info.go_name}_{go_camel_case(n.name)}" for n in desc.nested_type
        }
        nested_names.update(f"{info.go_name}_{go_camel_case(e.name)}" for e in desc.enum_type)

        flags = parse_flags(self.comments.get(path, ""), self.config)
        message = Message(
            name=info.go_name,
            full_name=full_name.lstrip("."),
            package=self.package,
            fields=tuple(fields),
            oneofs=tuple(oneofs),
            flags=flags,
            nested_type_names=frozenset(nested_names),
            source_file=self.file_proto.name,
        )
        if self.config.debug:
            logger.debug("Parsed %s (%d field(s), flags=%s)", message.full_name, len(fields), flags)
        out.append(message)

        for j, nested in enumerate(desc.nested_type):
            self._parse_message(nested, full_name, path + (_NESTED_TYPE_PATH, j), parents + [desc], out)


def parse_file_descriptors(
    protos: Sequence[d2.FileDescriptorProto],
    files_to_generate: Optional[Iterable[str]] = None,
    config: Optional[GeneratorConfig] = None,
) -> SchemaSet:
    """Build a schema set from file descriptors.

    All files take part in type resolution; only ``files_to_generate`` (every
    file when omitted) are marked for generation.
    """
    config = config or GeneratorConfig()
    known = [p.name for p in protos]
    targets = set(known if files_to_generate is None else files_to_generate)
    missing = sorted(targets - set(known))
    if missing:
        raise SchemaError(f"Files to generate not found in descriptors: {missing}")

    index = _index_types(protos)
    files = [_FileParser(p, index, config).parse(generate=p.name in targets) for p in protos]
    return SchemaSet(files=files)


def parse_descriptor_set(
    path: str,
    files_to_generate: Optional[Iterable[str]] = None,
    config: Optional[GeneratorConfig] = None,
) -> SchemaSet:
    """Parse a serialized ``FileDescriptorSet`` (``protoc --descriptor_set_out``)."""
    fds = d2.FileDescriptorSet()
    with open(path, "rb") as f:
        fds.ParseFromString(f.read())
    return parse_file_descriptors(list(fds.file), files_to_generate, config)

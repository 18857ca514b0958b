from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Tuple


class Kind(enum.Enum):
    BOOL = "bool"
    INT32 = "int32"
    INT64 = "int64"
    UINT32 = "uint32"
    UINT64 = "uint64"
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    STRING = "string"
    BYTES = "bytes"
    ENUM = "enum"
    MESSAGE = "message"
    # Anything the generator has no strategy for (proto2 groups, future kinds).
    UNKNOWN = "unknown"

    @property
    def is_scalar(self) -> bool:
        return self not in (Kind.ENUM, Kind.MESSAGE, Kind.UNKNOWN)


class Cardinality(enum.Enum):
    SINGULAR = "singular"
    REPEATED = "repeated"
    MAP = "map"


class MessageFlag(enum.Flag):
    NONE = 0
    OPTIONLESS = enum.auto()
    SKIP_INIT = enum.auto()


@dataclass(frozen=True)
class Package:
    """Identity of a generated package.

    Two packages are the same package when their import paths match; the
    short name is only used to qualify references from other packages.
    """

    import_path: str
    name: str = field(compare=False)


@dataclass(frozen=True)
class TypeRef:
    """An enum or message type referenced by a field."""

    full_name: str
    name: str
    package: Package


@dataclass(frozen=True)
class Field:
    name: str
    proto_name: str
    number: int
    kind: Kind
    cardinality: Cardinality = Cardinality.SINGULAR
    type_ref: Optional[TypeRef] = None
    oneof: Optional[str] = None
    nullable: bool = False
    # (key, value) fields of the map entry message, for map fields only.
    entry: Optional[Tuple[Field, Field]] = None


@dataclass(frozen=True)
class Oneof:
    name: str
    proto_name: str
    fields: Tuple[Field, ...] = ()
    synthetic: bool = False


@dataclass(frozen=True)
class Message:
    name: str
    full_name: str
    package: Package
    fields: Tuple[Field, ...] = ()
    oneofs: Tuple[Oneof, ...] = ()
    flags: MessageFlag = MessageFlag.NONE
    nested_type_names: FrozenSet[str] = frozenset()
    source_file: str = ""

    def find_oneof(self, proto_name: str) -> Optional[Oneof]:
        for oneof in self.oneofs:
            if oneof.proto_name == proto_name:
                return oneof
        return None

    @property
    def optionless(self) -> bool:
        return bool(self.flags & MessageFlag.OPTIONLESS)

    @property
    def skip_init(self) -> bool:
        return bool(self.flags & MessageFlag.SKIP_INIT)


@dataclass
class SchemaFile:
    name: str
    proto_package: str
    package: Package
    messages: List[Message] = field(default_factory=list)
    generate: bool = True


@dataclass
class SchemaSet:
    files: List[SchemaFile] = field(default_factory=list)
    _by_full_name: Dict[str, Message] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        for schema_file in self.files:
            for message in schema_file.messages:
                self._by_full_name[message.full_name] = message

    def find_message(self, full_name: str) -> Optional[Message]:
        return self._by_full_name.get(full_name)

    def generated_messages(self) -> List[Message]:
        """All messages of the files marked for generation, in file order."""
        return [m for f in self.files if f.generate for m in f.messages]

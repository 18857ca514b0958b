import pytest
from google.protobuf import descriptor_pb2 as d2

from protoc_gen_options.config import GeneratorConfig
from protoc_gen_options.models import Cardinality, Kind, MessageFlag, Package
from protoc_gen_options.parser.descriptor_parser import (
    SchemaError,
    go_camel_case,
    go_package,
    parse_descriptor_set,
    parse_file_descriptors,
    parse_flags,
)

FDP = d2.FieldDescriptorProto


def _make_file(name="example.proto", package="example", syntax="proto3",
               go_pkg="example.com/example;example") -> d2.FileDescriptorProto:
    file_proto = d2.FileDescriptorProto(name=name, package=package, syntax=syntax)
    if go_pkg:
        file_proto.options.go_package = go_pkg
    return file_proto


def _add_field(desc: d2.DescriptorProto, name: str, number: int, type_=FDP.TYPE_STRING,
               label=FDP.LABEL_OPTIONAL, type_name=None, **kwargs) -> FDP:
    fd = desc.field.add(name=name, number=number, type=type_, label=label, **kwargs)
    if type_name:
        fd.type_name = type_name
    return fd


def _parse_one(file_proto, config=None):
    schema = parse_file_descriptors([file_proto], config=config)
    return schema.files[0]


def _message(schema_file, name):
    for message in schema_file.messages:
        if message.name == name:
            return message
    raise AssertionError(f"{name} not parsed")


class TestGoCamelCase:
    def test_snake_case(self):
        assert go_camel_case("is_active") == "IsActive"

    def test_leading_underscore(self):
        assert go_camel_case("_foo") == "XFoo"

    def test_dot_before_lower(self):
        assert go_camel_case("foo.bar") == "FooBar"

    def test_dot_before_upper(self):
        assert go_camel_case("Foo.Bar") == "Foo_Bar"

    def test_digits(self):
        assert go_camel_case("field2name") == "Field2Name"

    def test_already_camel(self):
        assert go_camel_case("HTTPServer") == "HTTPServer"


class TestGoPackage:
    def test_path_and_name(self):
        package = go_package(_make_file(go_pkg="example.com/foo;bar"))
        assert package == Package("example.com/foo", "bar")
        assert package.name == "bar"

    def test_path_only_uses_last_segment(self):
        package = go_package(_make_file(go_pkg="example.com/foo/v1"))
        assert package.import_path == "example.com/foo/v1"
        assert package.name == "v1"

    def test_name_is_sanitized(self):
        assert go_package(_make_file(go_pkg="example.com/my-pkg")).name == "my_pkg"

    def test_fallback_to_directory_and_proto_package(self):
        package = go_package(_make_file(name="dir/thing.proto", package="my.pkg", go_pkg=""))
        assert package.import_path == "dir"
        assert package.name == "pkg"

    def test_fallback_without_proto_package(self):
        package = go_package(_make_file(name="thing.proto", package="", go_pkg=""))
        assert package.import_path == "."
        assert package.name == "thing"


class TestFields:
    def test_scalar_kinds_and_names(self):
        file_proto = _make_file()
        desc = file_proto.message_type.add(name="Basic")
        _add_field(desc, "customer_name", 1)
        _add_field(desc, "age", 2, FDP.TYPE_SINT32)
        _add_field(desc, "big", 3, FDP.TYPE_FIXED64)
        _add_field(desc, "ratio", 4, FDP.TYPE_DOUBLE)

        message = _message(_parse_one(file_proto), "Basic")

        assert [f.name for f in message.fields] == ["CustomerName", "Age", "Big", "Ratio"]
        assert [f.kind for f in message.fields] == [Kind.STRING, Kind.INT32, Kind.UINT64, Kind.FLOAT64]
        assert message.fields[0].proto_name == "customer_name"
        assert message.full_name == "example.Basic"
        assert message.source_file == "example.proto"

    def test_repeated(self):
        file_proto = _make_file()
        desc = file_proto.message_type.add(name="Repeated")
        _add_field(desc, "tags", 1, label=FDP.LABEL_REPEATED)

        field = _message(_parse_one(file_proto), "Repeated").fields[0]
        assert field.cardinality is Cardinality.REPEATED
        assert not field.nullable

    def test_group_is_unknown(self):
        file_proto = _make_file(syntax="proto2")
        desc = file_proto.message_type.add(name="Legacy")
        desc.nested_type.add(name="Data")
        _add_field(desc, "data", 1, FDP.TYPE_GROUP, type_name=".example.Legacy.Data")

        field = _message(_parse_one(file_proto), "Legacy").fields[0]
        assert field.kind is Kind.UNKNOWN
        assert not field.nullable

    def test_enum_and_message_refs(self):
        file_proto = _make_file()
        file_proto.enum_type.add(name="Color")
        file_proto.message_type.add(name="Inner")
        desc = file_proto.message_type.add(name="Paint")
        _add_field(desc, "color", 1, FDP.TYPE_ENUM, type_name=".example.Color")
        _add_field(desc, "inner", 2, FDP.TYPE_MESSAGE, type_name=".example.Inner")

        color, inner = _message(_parse_one(file_proto), "Paint").fields
        assert color.kind is Kind.ENUM
        assert color.type_ref.name == "Color"
        assert inner.kind is Kind.MESSAGE
        assert inner.type_ref.full_name == "example.Inner"
        assert inner.type_ref.package == Package("example.com/example", "example")

    def test_nested_enum_name(self):
        file_proto = _make_file()
        desc = file_proto.message_type.add(name="Outer")
        desc.enum_type.add(name="Mode")
        _add_field(desc, "mode", 1, FDP.TYPE_ENUM, type_name=".example.Outer.Mode")

        message = _message(_parse_one(file_proto), "Outer")
        assert message.fields[0].type_ref.name == "Outer_Mode"
        assert message.nested_type_names == frozenset({"Outer_Mode"})

    def test_reserved_name_gets_suffix(self):
        file_proto = _make_file()
        desc = file_proto.message_type.add(name="Clash")
        _add_field(desc, "string", 1)

        assert _message(_parse_one(file_proto), "Clash").fields[0].name == "String_"

    def test_getter_clash_gets_suffix(self):
        file_proto = _make_file()
        desc = file_proto.message_type.add(name="Clash")
        _add_field(desc, "name", 1)
        _add_field(desc, "get_name", 2)

        assert [f.name for f in _message(_parse_one(file_proto), "Clash").fields] == ["Name", "GetName_"]

    def test_unresolved_type(self):
        file_proto = _make_file()
        desc = file_proto.message_type.add(name="Broken")
        _add_field(desc, "missing", 1, FDP.TYPE_MESSAGE, type_name=".example.Missing")

        with pytest.raises(SchemaError, match="Missing"):
            parse_file_descriptors([file_proto])

    def test_cross_file_reference(self):
        ident = _make_file(name="identifier.proto", package="identifier",
                           go_pkg="example.com/example/identifier")
        ident.message_type.add(name="Identifier")
        file_proto = _make_file()
        file_proto.dependency.append("identifier.proto")
        desc = file_proto.message_type.add(name="User")
        _add_field(desc, "id", 1, FDP.TYPE_MESSAGE, type_name=".identifier.Identifier")

        schema = parse_file_descriptors([ident, file_proto])
        ref = _message(schema.files[1], "User").fields[0].type_ref

        assert ref.package == Package("example.com/example/identifier", "identifier")
        assert ref.package.name == "identifier"
        assert schema.find_message(ref.full_name).name == "Identifier"


class TestPresence:
    def test_proto3_implicit(self):
        file_proto = _make_file()
        desc = file_proto.message_type.add(name="Basic")
        _add_field(desc, "name", 1)

        assert not _message(_parse_one(file_proto), "Basic").fields[0].nullable

    def test_proto3_optional_is_nullable_in_synthetic_oneof(self):
        file_proto = _make_file()
        desc = file_proto.message_type.add(name="Person")
        desc.oneof_decl.add(name="_nickname")
        _add_field(desc, "nickname", 1, oneof_index=0, proto3_optional=True)

        message = _message(_parse_one(file_proto), "Person")
        assert message.fields[0].nullable
        assert message.fields[0].oneof == "_nickname"
        assert message.oneofs[0].synthetic

    def test_proto2_optional_scalars(self):
        file_proto = _make_file(syntax="proto2")
        desc = file_proto.message_type.add(name="Legacy")
        _add_field(desc, "count", 1, FDP.TYPE_INT32)
        _add_field(desc, "data", 2, FDP.TYPE_BYTES)

        count, data = _message(_parse_one(file_proto), "Legacy").fields
        assert count.nullable
        assert not data.nullable

    def test_empty_syntax_means_proto2(self):
        file_proto = _make_file(syntax="")
        desc = file_proto.message_type.add(name="Legacy")
        _add_field(desc, "count", 1, FDP.TYPE_INT32)

        assert _message(_parse_one(file_proto), "Legacy").fields[0].nullable

    def test_editions_default_is_explicit(self):
        file_proto = _make_file(syntax="editions")
        file_proto.edition = d2.EDITION_2023
        desc = file_proto.message_type.add(name="Modern")
        _add_field(desc, "name", 1)

        assert _message(_parse_one(file_proto), "Modern").fields[0].nullable

    def test_editions_implicit_file_feature(self):
        file_proto = _make_file(syntax="editions")
        file_proto.options.features.field_presence = d2.FeatureSet.IMPLICIT
        desc = file_proto.message_type.add(name="Modern")
        _add_field(desc, "name", 1)

        assert not _message(_parse_one(file_proto), "Modern").fields[0].nullable

    def test_editions_field_overrides_file(self):
        file_proto = _make_file(syntax="editions")
        file_proto.options.features.field_presence = d2.FeatureSet.IMPLICIT
        desc = file_proto.message_type.add(name="Modern")
        fd = _add_field(desc, "name", 1)
        fd.options.features.field_presence = d2.FeatureSet.EXPLICIT

        assert _message(_parse_one(file_proto), "Modern").fields[0].nullable


class TestOneofsAndMaps:
    def test_real_oneof(self):
        file_proto = _make_file()
        desc = file_proto.message_type.add(name="Envelope")
        desc.oneof_decl.add(name="choice")
        _add_field(desc, "text", 1, oneof_index=0)
        _add_field(desc, "count", 2, FDP.TYPE_INT32, oneof_index=0)

        message = _message(_parse_one(file_proto), "Envelope")
        oneof = message.oneofs[0]

        assert oneof.name == "Choice"
        assert oneof.proto_name == "choice"
        assert not oneof.synthetic
        assert [f.name for f in oneof.fields] == ["Text", "Count"]
        assert all(not f.nullable for f in message.fields)

    def test_oneof_index_out_of_range(self):
        file_proto = _make_file()
        desc = file_proto.message_type.add(name="Envelope")
        _add_field(desc, "text", 1, oneof_index=3)

        with pytest.raises(SchemaError, match="out of range"):
            parse_file_descriptors([file_proto])

    def test_map_field(self):
        file_proto = _make_file()
        desc = file_proto.message_type.add(name="Complex")
        entry = desc.nested_type.add(name="MetadataEntry")
        entry.options.map_entry = True
        _add_field(entry, "key", 1)
        _add_field(entry, "value", 2, FDP.TYPE_INT32)
        _add_field(desc, "metadata", 1, FDP.TYPE_MESSAGE, FDP.LABEL_REPEATED,
                   type_name=".example.Complex.MetadataEntry")

        schema_file = _parse_one(file_proto)
        field = _message(schema_file, "Complex").fields[0]

        assert [m.name for m in schema_file.messages] == ["Complex"]
        assert field.cardinality is Cardinality.MAP
        assert field.type_ref is None
        assert [f.kind for f in field.entry] == [Kind.STRING, Kind.INT32]

    def test_map_entry_with_wrong_field_count(self):
        file_proto = _make_file()
        desc = file_proto.message_type.add(name="Complex")
        entry = desc.nested_type.add(name="MetadataEntry")
        entry.options.map_entry = True
        _add_field(entry, "key", 1)
        _add_field(desc, "metadata", 1, FDP.TYPE_MESSAGE, FDP.LABEL_REPEATED,
                   type_name=".example.Complex.MetadataEntry")

        with pytest.raises(SchemaError, match="expected 2"):
            parse_file_descriptors([file_proto])


class TestMessages:
    def test_nested_messages_follow_parent(self):
        file_proto = _make_file()
        outer = file_proto.message_type.add(name="Outer")
        inner = outer.nested_type.add(name="Inner")
        _add_field(inner, "value", 1, FDP.TYPE_INT32)
        file_proto.message_type.add(name="After")

        schema_file = _parse_one(file_proto)

        assert [m.name for m in schema_file.messages] == ["Outer", "Outer_Inner", "After"]
        assert _message(schema_file, "Outer_Inner").full_name == "example.Outer.Inner"
        assert _message(schema_file, "Outer").nested_type_names == frozenset({"Outer_Inner"})

    def test_flags_from_comments(self):
        file_proto = _make_file()
        outer = file_proto.message_type.add(name="Outer")
        outer.nested_type.add(name="Inner")
        file_proto.message_type.add(name="Plain")
        file_proto.source_code_info.location.add(path=[4, 0], leading_comments=" Outer thing.\n @optionless\n")
        file_proto.source_code_info.location.add(path=[4, 0, 3, 0], leading_comments=" @skip-init @optionless\n")

        schema_file = _parse_one(file_proto)

        assert _message(schema_file, "Outer").flags == MessageFlag.OPTIONLESS
        assert _message(schema_file, "Outer_Inner").flags == MessageFlag.OPTIONLESS | MessageFlag.SKIP_INIT
        assert _message(schema_file, "Plain").flags == MessageFlag.NONE

    def test_custom_markers(self):
        config = GeneratorConfig(optionless_marker="+nooptions")
        assert parse_flags("+nooptions", config) == MessageFlag.OPTIONLESS
        assert parse_flags("@optionless", config) == MessageFlag.NONE

    def test_marker_must_be_whole_token(self):
        assert parse_flags("not@optionless here", GeneratorConfig()) == MessageFlag.NONE


class TestSchemaSet:
    def setup_method(self):
        self.first = _make_file(name="a.proto", package="a", go_pkg="example.com/a")
        self.first.message_type.add(name="Alpha")
        self.second = _make_file(name="b.proto", package="b", go_pkg="example.com/b")
        self.second.message_type.add(name="Beta")

    def test_every_file_generated_by_default(self):
        schema = parse_file_descriptors([self.first, self.second])
        assert [f.generate for f in schema.files] == [True, True]

    def test_files_to_generate(self):
        schema = parse_file_descriptors([self.first, self.second], ["b.proto"])

        assert [f.generate for f in schema.files] == [False, True]
        assert [m.name for m in schema.generated_messages()] == ["Beta"]
        assert schema.find_message("a.Alpha") is not None

    def test_unknown_file_to_generate(self):
        with pytest.raises(SchemaError, match="missing.proto"):
            parse_file_descriptors([self.first], ["missing.proto"])

    def test_parse_descriptor_set(self, tmp_path):
        fds = d2.FileDescriptorSet(file=[self.first, self.second])
        path = tmp_path / "schema.pb"
        path.write_bytes(fds.SerializeToString())

        schema = parse_descriptor_set(str(path), ["a.proto"])

        assert [f.name for f in schema.files] == ["a.proto", "b.proto"]
        assert [m.name for m in schema.generated_messages()] == ["Alpha"]

from google.protobuf import descriptor_pb2 as d2
from google.protobuf.compiler import plugin_pb2 as plugin

from protoc_gen_options.config import GeneratorConfig
from protoc_gen_options.main import main, run_plugin

FDP = d2.FieldDescriptorProto


def _make_files():
    ident = d2.FileDescriptorProto(name="identifier.proto", package="identifier", syntax="proto3")
    ident.options.go_package = "example.com/example/identifier"
    ident_msg = ident.message_type.add(name="Identifier")
    ident_msg.field.add(name="value", number=1, type=FDP.TYPE_STRING, label=FDP.LABEL_OPTIONAL)

    example = d2.FileDescriptorProto(name="example.proto", package="example", syntax="proto3")
    example.options.go_package = "example.com/example;example"
    example.dependency.append("identifier.proto")
    user = example.message_type.add(name="User")
    user.field.add(name="name", number=1, type=FDP.TYPE_STRING, label=FDP.LABEL_OPTIONAL)
    user.field.add(name="id", number=2, type=FDP.TYPE_MESSAGE, label=FDP.LABEL_OPTIONAL,
                   type_name=".identifier.Identifier")
    return [ident, example]


def _make_request(parameter="", files_to_generate=("example.proto",)):
    request = plugin.CodeGeneratorRequest(parameter=parameter)
    request.proto_file.extend(_make_files())
    request.file_to_generate.extend(files_to_generate)
    return request


class TestRunPlugin:
    def test_generates_requested_file(self):
        response = run_plugin(_make_request())

        assert not response.error
        assert [f.name for f in response.file] == ["example.com/example/example_options.go"]
        content = response.file[0].content
        assert "func WithName(value string) UserOption {" in content
        assert "func WithNewId(opts ...identifier.IdentifierOption) UserOption {" in content
        assert '\tidentifier "example.com/example/identifier"\n' in content

    def test_supported_features(self):
        response = run_plugin(_make_request())

        features = response.supported_features
        assert features & plugin.CodeGeneratorResponse.FEATURE_PROTO3_OPTIONAL
        assert features & plugin.CodeGeneratorResponse.FEATURE_SUPPORTS_EDITIONS
        assert response.minimum_edition == d2.EDITION_PROTO2
        assert response.maximum_edition == d2.EDITION_2023

    def test_parameter_is_applied(self):
        response = run_plugin(_make_request("paths=source_relative"))
        assert [f.name for f in response.file] == ["example_options.go"]

    def test_explicit_config_wins(self):
        response = run_plugin(_make_request("bogus"), GeneratorConfig(paths="source_relative"))

        assert not response.error
        assert [f.name for f in response.file] == ["example_options.go"]

    def test_bad_parameter_is_reported(self):
        response = run_plugin(_make_request("bogus=1"))

        assert "bogus" in response.error
        assert len(response.file) == 0

    def test_schema_error_is_reported(self):
        response = run_plugin(_make_request(files_to_generate=("missing.proto",)))

        assert "missing.proto" in response.error
        assert len(response.file) == 0

    def test_generates_every_requested_file(self):
        response = run_plugin(_make_request(files_to_generate=("identifier.proto", "example.proto")))
        names = [f.name for f in response.file]

        assert names == [
            "example.com/example/identifier/identifier_options.go",
            "example.com/example/example_options.go",
        ]
        assert "func WithValue(value string) IdentifierOption {" in response.file[0].content


class TestStandalone:
    def _write_set(self, tmp_path):
        path = tmp_path / "schema.pb"
        path.write_bytes(d2.FileDescriptorSet(file=_make_files()).SerializeToString())
        return str(path)

    def test_writes_files(self, tmp_path, capsys):
        out = tmp_path / "out"
        code = main([
            "--descriptor-set", self._write_set(tmp_path),
            "--out", str(out),
            "--file", "example.proto",
            "--param", "paths=source_relative",
        ])

        assert code == 0
        generated = out / "example_options.go"
        assert generated.exists()
        assert "package example" in generated.read_text()
        assert "Generated:" in capsys.readouterr().out

    def test_all_files_by_default(self, tmp_path):
        out = tmp_path / "out"
        code = main(["--descriptor-set", self._write_set(tmp_path), "--out", str(out)])

        assert code == 0
        assert (out / "example.com/example/example_options.go").exists()
        assert (out / "example.com/example/identifier/identifier_options.go").exists()

    def test_bad_parameter(self, tmp_path, capsys):
        code = main(["--descriptor-set", self._write_set(tmp_path), "--param", "nope=1"])

        assert code == 1
        assert "FATAL" in capsys.readouterr().err

    def test_unknown_file(self, tmp_path, capsys):
        code = main(["--descriptor-set", self._write_set(tmp_path), "--file", "missing.proto"])

        assert code == 1
        assert "missing.proto" in capsys.readouterr().err

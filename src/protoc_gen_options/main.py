from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from google.protobuf import descriptor_pb2 as d2
from google.protobuf.compiler import plugin_pb2 as plugin

from protoc_gen_options.config import ConfigError, GeneratorConfig, parse_parameter
from protoc_gen_options.engine import generate
from protoc_gen_options.generator.go_generator import output_filename, render
from protoc_gen_options.models import SchemaSet
from protoc_gen_options.parser.descriptor_parser import (
    SchemaError,
    parse_descriptor_set,
    parse_file_descriptors,
)

logger = logging.getLogger(__name__)


def _configure_logging(config: GeneratorConfig) -> None:
    # stdout carries the CodeGeneratorResponse, so logs go to stderr.
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if config.debug else logging.WARNING,
        format="protoc-gen-go-options: %(levelname)s %(name)s: %(message)s",
    )


def generate_files(schema: SchemaSet, config: GeneratorConfig) -> List[Tuple[str, str]]:
    """Render every generated file of the schema set as ``(path, content)`` pairs."""
    files_by_name = {f.name: f for f in schema.files}
    outputs: List[Tuple[str, str]] = []
    for sequence in generate(schema, config):
        schema_file = files_by_name[sequence.source]
        outputs.append((output_filename(schema_file, config), render(sequence)))
    return outputs


def run_plugin(
    request: plugin.CodeGeneratorRequest,
    config: Optional[GeneratorConfig] = None,
) -> plugin.CodeGeneratorResponse:
    """Answer a protoc CodeGeneratorRequest.

    Failures are reported through ``response.error`` and produce no files.
    """
    response = plugin.CodeGeneratorResponse()
    response.supported_features = (
        plugin.CodeGeneratorResponse.FEATURE_PROTO3_OPTIONAL
        | plugin.CodeGeneratorResponse.FEATURE_SUPPORTS_EDITIONS
    )
    response.minimum_edition = d2.EDITION_PROTO2
    response.maximum_edition = d2.EDITION_2023

    try:
        if config is None:
            config = parse_parameter(request.parameter)
        schema = parse_file_descriptors(list(request.proto_file), list(request.file_to_generate), config)
        outputs = generate_files(schema, config)
    except (ConfigError, SchemaError) as e:
        response.error = str(e)
        return response

    for name, content in outputs:
        out_file = response.file.add()
        out_file.name = name
        out_file.content = content
    return response


def _run_standalone(args: argparse.Namespace, config: GeneratorConfig) -> int:
    try:
        schema = parse_descriptor_set(args.descriptor_set, args.files or None, config)
        outputs = generate_files(schema, config)
    except (ConfigError, SchemaError) as e:
        print(f"FATAL: {e}", file=sys.stderr)
        return 1

    if not outputs:
        print("No files to generate.")
        return 0

    generated: List[str] = []
    for name, content in outputs:
        out_path = os.path.join(args.out, name)
        os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
        Path(out_path).write_text(content, encoding="utf-8")
        generated.append(out_path)
    print("Generated:\n" + "\n".join(generated))
    return 0


def setup_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="protoc-gen-go-options",
        description=(
            "Generate Go functional-option builders for protobuf messages. "
            "Run without arguments as a protoc plugin, or pass --descriptor-set."
        ),
    )
    parser.add_argument(
        "--descriptor-set",
        help="Serialized FileDescriptorSet (protoc --include_imports --descriptor_set_out)",
    )
    parser.add_argument("--out", default=".", help="Output directory for generated files")
    parser.add_argument(
        "--file",
        dest="files",
        action="append",
        default=[],
        help="Proto file name to generate (repeatable, defaults to every file in the set)",
    )
    parser.add_argument(
        "--param",
        default="",
        help="Plugin parameter string, e.g. 'paths=source_relative,debug=true'",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = setup_parser()
    args = parser.parse_args(argv)

    if args.descriptor_set:
        try:
            config = parse_parameter(args.param)
        except ConfigError as e:
            print(f"FATAL: {e}", file=sys.stderr)
            return 1
        _configure_logging(config)
        return _run_standalone(args, config)

    if sys.stdin.isatty():
        parser.print_help(sys.stderr)
        return 1

    request = plugin.CodeGeneratorRequest()
    request.ParseFromString(sys.stdin.buffer.read())
    try:
        config = parse_parameter(request.parameter)
    except ConfigError:
        config = GeneratorConfig()
    _configure_logging(config)

    response = run_plugin(request)
    if response.error:
        logger.error("%s", response.error)
    # protoc reports response.error itself; the plugin still exits cleanly.
    sys.stdout.buffer.write(response.SerializeToString())
    return 0


if __name__ == "__main__":
    sys.exit(main())

from __future__ import annotations

import logging
from typing import List, Optional

from protoc_gen_options.collisions import CollisionMap, analyze_collisions
from protoc_gen_options.config import GeneratorConfig
from protoc_gen_options.declarations import DeclarationSequence, refs_of
from protoc_gen_options.emitter import emit_message
from protoc_gen_options.models import Package, SchemaFile, SchemaSet

logger = logging.getLogger(__name__)


def _foreign_packages(sequence: DeclarationSequence) -> List[Package]:
    """Packages referenced through qualified refs, in first-use order."""
    seen: List[Package] = []
    for decl in sequence.declarations:
        for ref in refs_of(decl):
            if ref.qualifier is not None and ref.package not in seen:
                seen.append(ref.package)
    return seen


def generate_file(
    schema_file: SchemaFile,
    schema: SchemaSet,
    collisions: CollisionMap,
    config: GeneratorConfig,
) -> DeclarationSequence:
    sequence = DeclarationSequence(source=schema_file.name, package=schema_file.package)
    for message in schema_file.messages:
        sequence.declarations.extend(emit_message(message, collisions, schema, config))
    sequence.imports = _foreign_packages(sequence)
    return sequence


def generate(schema: SchemaSet, config: Optional[GeneratorConfig] = None) -> List[DeclarationSequence]:
    """Generate the declaration sequences of every file marked for generation.

    Field-name collisions are counted once, over all generated files, before
    any file is emitted.
    """
    config = config or GeneratorConfig()
    collisions = analyze_collisions(schema.generated_messages())
    if config.debug:
        logger.debug("Ambiguous field names: %s", sorted(collisions.ambiguous_names()))

    sequences: List[DeclarationSequence] = []
    for schema_file in schema.files:
        if not schema_file.generate:
            continue
        sequence = generate_file(schema_file, schema, collisions, config)
        if config.debug:
            logger.debug("%s: %d declaration(s)", schema_file.name, len(sequence.declarations))
        sequences.append(sequence)
    return sequences

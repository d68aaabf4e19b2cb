#!/usr/bin/env python3
"""Tree Codec - Text (de)serialization of the secrets tree.

The tree is stored as YAML because it keeps non-string scalar keys
(``{1: {true: x}}``) intact, which JSON cannot. The same parser reads values,
paths and env mappings given on the command line.

Scalars resolve with the YAML 1.2 core schema: ``0123``, ``yes``, ``off`` and
``12:30`` stay strings instead of becoming octal, booleans or base-60 ints.

Legacy (salt-less) files hold EDN text instead. Those are read with
`deserialize_edn_tree`; keywords and symbols become plain string keys.
"""

import re
from collections.abc import Mapping, Sequence, Set
from decimal import Decimal
from typing import Any, Dict, List
from uuid import UUID

import edn_format
import yaml

from .errors import MalformedInputError


_CORE_SCHEMA_TAGS = ("tag:yaml.org,2002:bool", "tag:yaml.org,2002:int", "tag:yaml.org,2002:float")

_CORE_SCHEMA_RESOLVERS = [
    (
        "tag:yaml.org,2002:bool",
        re.compile(r"^(?:true|True|TRUE|false|False|FALSE)$"),
        list("tTfF"),
    ),
    # No leading zeros: PyYAML would construct 0123 as octal
    (
        "tag:yaml.org,2002:int",
        re.compile(r"^(?:[-+]?(?:0|[1-9][0-9]*)|0x[0-9a-fA-F]+|0o[0-7]+)$"),
        list("-+0123456789"),
    ),
    (
        "tag:yaml.org,2002:float",
        re.compile(
            r"^(?:[-+]?(?:[0-9]+\.[0-9]*|\.[0-9]+)(?:[eE][-+]?[0-9]+)?"
            r"|[-+]?[0-9]+[eE][-+]?[0-9]+"
            r"|[-+]?\.(?:inf|Inf|INF)|\.(?:nan|NaN|NAN))$"
        ),
        list("-+0123456789."),
    ),
]


def _core_schema(cls):
    """Swap the YAML 1.1 bool/int/float resolvers of `cls` for YAML 1.2 core ones."""
    cls.yaml_implicit_resolvers = {
        first: [(tag, regexp) for tag, regexp in resolvers if tag not in _CORE_SCHEMA_TAGS]
        for first, resolvers in cls.yaml_implicit_resolvers.items()
    }
    for tag, regexp, first in _CORE_SCHEMA_RESOLVERS:
        cls.add_implicit_resolver(tag, regexp, first)
    return cls


@_core_schema
class CoreSchemaLoader(yaml.SafeLoader):
    pass


# Quotes exactly the strings CoreSchemaLoader would read back as non-strings
@_core_schema
class CoreSchemaDumper(yaml.SafeDumper):
    pass


def dump_tree(tree: Dict[Any, Any]) -> str:
    """Render a tree as human-editable YAML text."""
    return yaml.dump(
        tree,
        Dumper=CoreSchemaDumper,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
    )


def serialize_tree(tree: Dict[Any, Any]) -> bytes:
    """Serialize a tree to UTF-8 bytes for encryption."""
    return dump_tree(tree).encode("utf-8")


def parse_value(text: str) -> Any:
    """Parse one YAML value.

    Raises:
        MalformedInputError: If the text is not valid YAML

    """
    try:
        return yaml.load(text, Loader=CoreSchemaLoader)
    except yaml.YAMLError as e:
        raise MalformedInputError(f"Invalid value: {e}") from e


def _decode_text(data) -> str:
    if isinstance(data, bytes):
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedInputError(f"Secrets are not valid UTF-8: {e}") from e
    return data


def _top_level_tree(tree: Any) -> Dict[Any, Any]:
    if tree is None:
        return {}
    if not isinstance(tree, dict):
        raise MalformedInputError(
            f"Secrets must be a mapping at the top level, got {type(tree).__name__}"
        )
    return tree


def deserialize_tree(data) -> Dict[Any, Any]:
    """Parse decrypted bytes (or edited text) back into a tree.

    An empty document is an empty tree. Anything other than a mapping at the
    top level is rejected.
    """
    return _top_level_tree(parse_value(_decode_text(data)))


def from_edn(value: Any) -> Any:
    """Convert values read by edn_format into plain Python types.

    Keywords and symbols become their names (``:bitso`` -> ``"bitso"``),
    maps become dicts, vectors, lists and sets become lists. UUIDs and
    decimals become strings so the result can be written back as YAML.
    """
    if isinstance(value, (edn_format.Keyword, edn_format.Symbol)):
        return value.name
    if isinstance(value, Mapping):
        tree = {}
        for k, v in value.items():
            key = from_edn(k)
            if isinstance(key, (dict, list)):
                raise MalformedInputError(f"Map keys must be scalars, got {type(key).__name__}")
            tree[key] = from_edn(v)
        return tree
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, str):
        return value
    if isinstance(value, (Sequence, Set)):
        return [from_edn(v) for v in value]
    return value


def parse_edn(text: str) -> Any:
    """Parse one EDN value into plain Python types.

    Raises:
        MalformedInputError: If the text is not valid EDN

    """
    if not text.strip():
        return None
    try:
        value = edn_format.loads(text)
    except ValueError as e:
        raise MalformedInputError(f"Invalid EDN: {e}") from e
    return from_edn(value)


def deserialize_edn_tree(data) -> Dict[Any, Any]:
    """Parse the EDN plaintext of a legacy secrets file into a tree."""
    return _top_level_tree(parse_edn(_decode_text(data)))


def parse_path(text: str) -> List[Any]:
    """Parse a tree path given on the command line.

    Two forms are accepted:
        a/b/c            string segments
        [a, 1, true]     YAML flow sequence, segments keep their scalar type

    """
    text = text.strip()
    if not text:
        raise MalformedInputError("Path cannot be empty")

    if text.startswith("["):
        path = parse_value(text)
        if not isinstance(path, list):
            raise MalformedInputError(f"Path is not a sequence: {text}")
        for segment in path:
            if isinstance(segment, (dict, list)):
                raise MalformedInputError(f"Path segments must be scalars: {text}")
        return path

    segments = text.strip("/").split("/")
    if any(not s for s in segments):
        raise MalformedInputError(f"Path has an empty segment: {text}")
    return segments


def parse_mapping(text: str) -> Dict[Any, Any]:
    """Parse a YAML/JSON mapping, e.g. for ``merge`` or ``with-env``."""
    value = parse_value(text)
    if not isinstance(value, dict):
        raise MalformedInputError(f"Expected a mapping, got: {text}")
    return value

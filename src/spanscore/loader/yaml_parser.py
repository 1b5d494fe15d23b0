"""YAML parsing with source positions for evaluator definitions.

The loader records where every mapping key and sequence item starts so
validation errors can point at the offending line of the user's file.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

LineMap = dict[str, tuple[int, int]]


class YAMLParseError(Exception):
    """Raised when YAML syntax cannot be parsed.

    Attributes:
        line: 1-indexed line number where the error occurred.
        column: 1-indexed column number where the error occurred.
        message: Human-readable description of the syntax error.
        filename: Name of the file being parsed, or '<string>'.
    """

    def __init__(
        self,
        message: str,
        line: int | None = None,
        column: int | None = None,
        filename: str = "<string>",
    ) -> None:
        self.message = message
        self.line = line
        self.column = column
        self.filename = filename
        super().__init__(message)


class LineTrackingLoader(yaml.SafeLoader):
    """SafeLoader that fills ``line_map`` with dotted path -> (line, column).

    Paths use pydantic's loc convention: ``filter.0.field``,
    ``scorer_config.messages.1.content``. Positions are 1-indexed.
    """

    def __init__(self, stream: str) -> None:
        super().__init__(stream)
        self.line_map: LineMap = {}
        self._path: list[str] = []

    def _mark(self, key: str, node: yaml.Node) -> None:
        if node.start_mark is None:
            return
        self.line_map[".".join([*self._path, key])] = (
            node.start_mark.line + 1,
            node.start_mark.column + 1,
        )

    def _construct_child(self, key: str, node: yaml.Node, deep: bool) -> Any:
        if isinstance(node, (yaml.MappingNode, yaml.SequenceNode)):
            self._path.append(key)
            try:
                return self.construct_object(node, deep=deep)
            finally:
                self._path.pop()
        return self.construct_object(node, deep=deep)

    def construct_mapping(self, node: yaml.MappingNode, deep: bool = False) -> dict[str, Any]:
        self.flatten_mapping(node)
        data: dict[str, Any] = {}
        for key_node, value_node in node.value:
            key = self.construct_object(key_node, deep=deep)
            if isinstance(key, str):
                self._mark(key, key_node)
                data[key] = self._construct_child(key, value_node, deep)
            else:
                data[key] = self.construct_object(value_node, deep=deep)
        return data

    def construct_sequence(self, node: yaml.SequenceNode, deep: bool = False) -> list[Any]:
        items = []
        for index, child in enumerate(node.value):
            self._mark(str(index), child)
            items.append(self._construct_child(str(index), child, deep))
        return items

    def construct_yaml_map(self, node: yaml.MappingNode) -> Any:
        yield self.construct_mapping(node, deep=True)

    def construct_yaml_seq(self, node: yaml.SequenceNode) -> Any:
        yield self.construct_sequence(node, deep=True)


LineTrackingLoader.add_constructor(
    "tag:yaml.org,2002:map",
    LineTrackingLoader.construct_yaml_map,
)

LineTrackingLoader.add_constructor(
    "tag:yaml.org,2002:seq",
    LineTrackingLoader.construct_yaml_seq,
)


def parse_yaml_with_lines(
    source: str,
    filename: str = "<string>",
) -> tuple[dict | None, LineMap]:
    """Parse a YAML string and return (data, line_map).

    Returns (None, {}) for empty, comment-only or non-mapping documents.

    Raises:
        YAMLParseError: If the YAML contains syntax errors.
    """
    try:
        loader = LineTrackingLoader(source)
        try:
            data = loader.get_single_data()
        finally:
            loader.dispose()
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        raise YAMLParseError(
            message=str(e),
            line=mark.line + 1 if mark is not None else None,
            column=mark.column + 1 if mark is not None else None,
            filename=filename,
        ) from e

    if not isinstance(data, dict):
        return None, {}
    return data, loader.line_map


def parse_yaml_file(filepath: Path) -> tuple[dict | None, LineMap]:
    """Parse a YAML file and return (data, line_map).

    Raises:
        YAMLParseError: If the file contains YAML syntax errors.
        FileNotFoundError: If the file does not exist.
    """
    return parse_yaml_with_lines(
        filepath.read_text(encoding="utf-8"),
        filename=str(filepath),
    )

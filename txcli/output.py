"""
Output Formatting Module for the txmerkle CLI

Renders command results as plain tables, JSON or YAML. Digests that reach
the formatter as bytes are always shown as lowercase hex.
"""

import json
from typing import Any, Callable, Dict, List, Optional

import yaml
from tabulate import tabulate


def to_plain(value: Any) -> Any:
    """Recursively convert bytes to hex so every format can serialize the value."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    if isinstance(value, dict):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(item) for item in value]
    return value


def _cell(value: Any) -> str:
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, list):
        return ', '.join(str(item) for item in value) if value else '-'
    return str(value)


class OutputFormatter:
    """Output formatter for CLI results."""

    def __init__(self, format_type: str = 'table'):
        """
        Args:
            format_type: Output format (table, json, yaml)
        """
        self.format_type = format_type
        self._renderers: Dict[str, Callable[..., str]] = {
            'json': self.format_json,
            'yaml': self.format_yaml,
        }

    def format(self, data: Any, headers: Optional[List[str]] = None) -> str:
        """
        Render ``data`` in the configured format.

        Unknown format names fall back to a table.
        """
        renderer = self._renderers.get(self.format_type)
        if renderer is None:
            return self.format_table(data, headers)
        return renderer(data)

    def format_json(self, data: Any) -> str:
        return json.dumps(to_plain(data), indent=2, default=str)

    def format_yaml(self, data: Any) -> str:
        return yaml.safe_dump(to_plain(data), default_flow_style=False, sort_keys=False).rstrip()

    def format_table(self, data: Any, headers: Optional[List[str]] = None) -> str:
        """
        Render mappings as two aligned columns and lists of mappings as a
        table with a header row. Hex strings are never reparsed as numbers.
        """
        data = to_plain(data)

        if isinstance(data, dict):
            rows = [[key, _cell(value)] for key, value in data.items()]
            return tabulate(rows, tablefmt='plain', disable_numparse=True)

        if isinstance(data, list):
            if not data:
                return "No data available"
            if not isinstance(data[0], dict):
                return '\n'.join(str(item) for item in data)

            columns = headers or list(data[0].keys())
            rows = [[_cell(row.get(column, '')) for column in columns] for row in data]
            return tabulate(rows, headers=columns, tablefmt='simple', disable_numparse=True)

        return str(data)

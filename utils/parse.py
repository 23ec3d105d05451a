"""Configuration document parser.

Turns a JSON document (engine config, workflow, pool, rule) into a
validated Pydantic model. Handles the common authoring quirks:
- A UTF-8 byte order mark at the start of the file
- Full-line // comments
- camelCase keys (maxConcurrent, stepTimeout) as exported by other tools
"""

import json
import re
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)

# Free-form dictionaries whose keys belong to the user and are kept as written.
_OPAQUE_KEYS = {"parameters", "metadata", "detail"}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


class ConfigParseError(Exception):
    """Raised when a document cannot be parsed into the expected schema.

    Includes the raw text so callers can log it without having to catch
    and re-wrap the original exception themselves.
    """

    def __init__(self, message: str, raw: str):
        super().__init__(message)
        self.raw = raw


def parse_config(text: str, schema: type[ModelT]) -> ModelT:
    """Parse a JSON document into a validated Pydantic model.

    Args:
        text: The document.
        schema: Pydantic model class to validate against.

    Returns:
        A validated instance of schema.

    Raises:
        ConfigParseError: If the text is not a JSON object or does not
            match the schema. The .raw attribute contains the original text.
    """
    cleaned = _strip_comments(text.lstrip("\ufeff"))

    data = _try_parse(cleaned)
    if data is None:
        raise ConfigParseError(
            f"No JSON object found in document for schema {schema.__name__}",
            raw=text,
        )

    try:
        return schema.model_validate(_snake_keys(data))
    except ValidationError as exc:
        raise ConfigParseError(
            f"Document does not match schema {schema.__name__}: {exc}",
            raw=text,
        ) from exc


def load_config(path: str | Path, schema: type[ModelT]) -> ModelT:
    """Read a file and parse it with parse_config().

    Raises:
        ConfigParseError: If the file is missing, unreadable or invalid.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigParseError(f"Cannot read {path}: {exc}", raw="") from exc
    return parse_config(text, schema)


# ── Private helpers ────────────────────────────────────────────────────────────

def _strip_comments(text: str) -> str:
    """Drop lines that are only a // comment."""
    return "\n".join(line for line in text.splitlines() if not line.lstrip().startswith("//"))


def _try_parse(text: str) -> dict | None:
    """Attempt a direct json.loads(); return None on failure or a non-object."""
    try:
        result = json.loads(text)
        return result if isinstance(result, dict) else None
    except json.JSONDecodeError:
        return None


def _snake(key: str) -> str:
    return _CAMEL_BOUNDARY.sub(r"_\1", key).lower()


def _snake_keys(value: Any) -> Any:
    """Recursively rename camelCase keys to snake_case."""
    if isinstance(value, list):
        return [_snake_keys(item) for item in value]
    if not isinstance(value, dict):
        return value
    renamed: dict[str, Any] = {}
    for key, item in value.items():
        new_key = _snake(key) if isinstance(key, str) else key
        renamed[new_key] = item if new_key in _OPAQUE_KEYS else _snake_keys(item)
    return renamed

"""Parsing of free-form product specifications and feature lists.

Both arrive from multipart forms as JSON text, but callers may also pass
already-structured values.
"""
import json
from typing import Any, Dict, List, Mapping

from storefront.exceptions import ValidationError


def _decode(raw, field: str):
    try:
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode('utf-8')
        if not raw.strip():
            return None
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ValidationError(f'Invalid {field} format', errors=[f'{field}: {e}'])


def _spec_text(value: Any) -> str:
    """Render a JSON scalar the way it reads in the source document."""
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def parse_specifications(raw: Any) -> Dict[str, str]:
    """
    Normalize specifications into a text-to-text mapping.

    Values are coerced to text and kept only when truthy, so "" / 0 / None
    never reach the database. JSON booleans become "true"/"false" and
    whole-number floats lose their ".0".

    Raises:
        ValidationError: Malformed JSON or bad UTF-8, or JSON that is not an object
    """
    if isinstance(raw, (str, bytes, bytearray)):
        raw = _decode(raw, 'specifications')
    if raw is None:
        return {}

    if not isinstance(raw, Mapping):
        raise ValidationError(
            'Invalid specifications format',
            errors=['specifications: expected a JSON object of key/value pairs']
        )

    return {str(key): _spec_text(value) for key, value in raw.items() if value}


def parse_features(raw: Any) -> List[str]:
    """
    Normalize features into an ordered list.

    Sequences are returned as-is (order preserved, empty strings kept).

    Raises:
        ValidationError: Malformed JSON or bad UTF-8, or JSON that is not an array
    """
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        return list(raw)
    if isinstance(raw, (str, bytes, bytearray)):
        parsed = _decode(raw, 'features')
        if parsed is None:
            return []
        if isinstance(parsed, list):
            return parsed

    raise ValidationError(
        'Invalid features format',
        errors=['features: expected a JSON array of strings']
    )

"""Pull a JSON object out of free-form model output.

Models are told to "return ONLY JSON" but regularly wrap the payload in prose
or markdown fences. ``extract_json`` decodes candidate objects with a real
JSON decoder starting at every ``{`` so nested braces and braces inside
strings are handled, and only accepts an object carrying the expected key.
"""

import json
import re

from errors import ParseError

_decoder = json.JSONDecoder()
_FENCE_RE = re.compile(r"^\s*```(?:json|JSON)?\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)


def find_object_with_key(raw_text, required_key):
    """Return the first decodable object in ``raw_text`` that has ``required_key``."""
    idx = raw_text.find("{")
    while idx != -1:
        try:
            value, _end = _decoder.raw_decode(raw_text, idx)
        except ValueError:
            value = None
        if isinstance(value, dict) and required_key in value:
            return value
        idx = raw_text.find("{", idx + 1)
    return None


def strip_code_fence(text):
    m = _FENCE_RE.match(text)
    return m.group(1) if m else text


def extract_json(raw_text, required_key, source="model"):
    if not isinstance(raw_text, str):
        raise ParseError(f"Failed to parse {source} response as JSON")

    found = find_object_with_key(raw_text, required_key)
    if found is not None:
        return found

    try:
        return json.loads(strip_code_fence(raw_text).strip())
    except ValueError:
        raise ParseError(f"Failed to parse {source} response as JSON") from None

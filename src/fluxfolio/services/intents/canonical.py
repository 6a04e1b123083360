"""The one JSON serialization used for hashing, signing and publishing."""

import json
from typing import Any


def canonical_json(obj: Any) -> str:
    """Compact JSON with sorted keys.

    The signature covers these exact bytes, so the relay must receive this
    string unchanged.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)

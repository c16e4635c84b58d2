from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Mapping
from typing import Any

logger = logging.getLogger("dynamo_update")
logger.addHandler(logging.NullHandler())


def redact_key(key: Mapping[str, Any]) -> str:
    raw = json.dumps(key, sort_keys=True, default=repr).encode()
    return hashlib.sha256(raw).hexdigest()[:12]

from dataclasses import dataclass
from typing import Any
import hashlib
import json
import re

from strata.domain.value_objects.reference import to_canonical


@dataclass(frozen=True)
class ConfigHash:
    """
    Value Object representing the fingerprint of a resource's declared
    configuration. Ensures that the hash format is valid.
    """
    value: str

    def __post_init__(self):
        if not self._is_valid(self.value):
            raise ValueError(f"Invalid configuration hash format: {self.value}")

    @staticmethod
    def _is_valid(value: str) -> bool:
        # sha256 hex digest
        return bool(re.match(r'^[0-9a-f]{64}$', value))

    @staticmethod
    def of(kind: str, properties: dict[str, Any]) -> 'ConfigHash':
        payload = json.dumps(
            {"kind": kind, "properties": to_canonical(properties)},
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )
        return ConfigHash(hashlib.sha256(payload.encode("utf-8")).hexdigest())

    def short(self) -> str:
        return self.value[:12]

    def __str__(self):
        return self.value

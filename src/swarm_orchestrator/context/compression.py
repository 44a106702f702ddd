"""Payload compression heuristics for the context store."""

import json
from typing import Any, Dict, Tuple


def serialize(payload: Any) -> str:
    """Stable JSON serialization used for sizing and keyword search."""
    return json.dumps(payload, default=str, sort_keys=True)


def redundancy(text: str) -> float:
    """1 - unique-word ratio of a text."""
    words = text.split(" ")
    if not words:
        return 0.0
    return 1 - len(set(words)) / len(words)


class PayloadCompressor:
    """
    Decides when to compress a payload and applies the compression rules.

    PATTERN: Compress when large OR redundant
    GOTCHA: Only top-level keys are rewritten, nested structures are untouched
    """

    def __init__(
        self,
        size_threshold: int = 10000,
        redundancy_threshold: float = 0.7,
        description_max_length: int = 500,
        array_threshold: int = 20,
        array_keep: int = 10,
    ):
        self.size_threshold = size_threshold
        self.redundancy_threshold = redundancy_threshold
        self.description_max_length = description_max_length
        self.array_threshold = array_threshold
        self.array_keep = array_keep

    def needs_compression(self, serialized: str) -> bool:
        return (
            len(serialized) > self.size_threshold
            or redundancy(serialized) > self.redundancy_threshold
        )

    def compress(self, payload: Dict[str, Any]) -> Tuple[Dict[str, Any], bool, float]:
        """
        Compress a payload if it qualifies.

        Args:
            payload: Payload to store

        Returns:
            (payload to store, whether it was compressed, compressed/original size ratio)
        """
        original = serialize(payload)
        if not original or not self.needs_compression(original):
            return dict(payload), False, 1.0

        compressed = dict(payload)

        description = compressed.get("description")
        if isinstance(description, str) and len(description) > self.description_max_length:
            compressed["description"] = (
                description[: self.description_max_length - 3] + "..."
            )

        for key, value in payload.items():
            if isinstance(value, list) and len(value) > self.array_threshold:
                omitted = len(value) - 2 * self.array_keep
                compressed[key] = (
                    value[: self.array_keep]
                    + [{"_compressed": f"... {omitted} items omitted ..."}]
                    + value[-self.array_keep:]
                )

        ratio = len(serialize(compressed)) / len(original)
        return compressed, True, round(ratio, 4)

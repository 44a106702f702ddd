"""Tests for payload compression heuristics."""

from swarm_orchestrator.context.compression import PayloadCompressor, redundancy, serialize


def test_small_payload_untouched():
    """Test payloads under both thresholds are stored as-is."""
    payload = {"title": "Checkout", "steps": [1, 2, 3]}

    stored, compressed, ratio = PayloadCompressor().compress(payload)

    assert stored == payload
    assert compressed is False
    assert ratio == 1.0


def test_long_description_truncated():
    """Test descriptions are cut to the limit with an ellipsis."""
    compressor = PayloadCompressor(size_threshold=100, description_max_length=50)

    stored, compressed, ratio = compressor.compress({"description": "x" * 600})

    assert compressed is True
    assert len(stored["description"]) == 50
    assert stored["description"].endswith("...")
    assert ratio < 1.0


def test_long_lists_sampled_from_both_ends():
    """Test lists keep the head and tail around an omission marker."""
    compressor = PayloadCompressor(size_threshold=50)

    stored, compressed, _ = compressor.compress({"items": list(range(30))})

    items = stored["items"]
    assert compressed is True
    assert len(items) == 21
    assert items[:10] == list(range(10))
    assert items[-10:] == list(range(20, 30))
    assert items[10] == {"_compressed": "... 10 items omitted ..."}


def test_redundant_text_triggers_compression():
    """Test repetitive payloads qualify even when small."""
    serialized = serialize({"notes": " ".join(["a"] * 30)})

    assert redundancy(serialized) > 0.7
    assert PayloadCompressor().needs_compression(serialized)


def test_nested_structures_untouched():
    """Test only top-level keys are rewritten."""
    payload = {"nested": {"description": "y" * 600}}
    stored, _, _ = PayloadCompressor(size_threshold=10).compress(payload)

    assert stored["nested"]["description"] == "y" * 600

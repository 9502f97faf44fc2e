"""
Tests for the task text feature encoder and state keys.
"""

import re

import numpy as np
import pytest

from agent_router.gating.components.state_encoder import (
    EXTENSION_HINTS,
    TaskStateEncoder,
    murmurhash3_32,
)


@pytest.fixture
def encoder():
    return TaskStateEncoder()


def test_encoding_is_deterministic(encoder):
    text = "implement user authentication in auth.py"
    first = encoder.encode(text)
    fresh = TaskStateEncoder().encode(text)

    np.testing.assert_array_equal(first, fresh)
    assert encoder.state_key(text) == TaskStateEncoder().state_key(text)


def test_vector_is_unit_length_and_read_only(encoder):
    features = encoder.encode("fix the flaky login test")

    assert features.shape == (64,)
    assert np.linalg.norm(features) == pytest.approx(1.0)
    with pytest.raises(ValueError):
        features[0] = 5.0


def test_keyword_and_extension_slots(encoder):
    features = encoder.encode("implement parser.py")

    assert features[0] > 0  # "implement"
    assert features[48 + EXTENSION_HINTS.index(".py")] > 0
    assert features[48 + EXTENSION_HINTS.index(".go")] == 0


def test_length_buckets_are_one_hot(encoder):
    features = encoder.encode("word " * 80)

    assert np.count_nonzero(features[32:40]) == 1
    assert np.count_nonzero(features[40:48]) == 1
    # 400 chars and 80 words both saturate the last bucket
    assert features[39] > 0
    assert features[47] > 0


def test_empty_text_still_encodes(encoder):
    features = encoder.encode("")

    assert np.all(np.isfinite(features))
    assert encoder.state_key("").startswith("fstate_")


def test_state_key_format(encoder):
    key = encoder.state_key("review the payment module for security issues")
    assert re.fullmatch(r"fstate_[0-9a-z]+", key)


def test_vector_to_key_quantizes_small_differences():
    base = np.zeros(64)
    base[[0, 10, 33]] = 0.5
    nudged = base.copy()
    nudged[20] = 0.1  # below the quantization threshold

    assert TaskStateEncoder.vector_to_key(base) == TaskStateEncoder.vector_to_key(nudged)


def test_feature_cache_is_bounded():
    encoder = TaskStateEncoder(cache_size=2)
    for text in ("one", "two", "three"):
        encoder.encode(text)

    assert len(encoder) == 2
    # Uncached texts are still encoded
    assert encoder.encode("three").shape == (64,)

    encoder.clear_cache()
    assert len(encoder) == 0


def test_murmurhash_is_stable_32bit():
    h = murmurhash3_32("write_tests")

    assert h == murmurhash3_32("write_tests")
    assert h != murmurhash3_32("tests_write")
    assert 0 <= h <= 0xFFFFFFFF


def test_state_key_depends_only_on_trailing_slots():
    tail_only = np.zeros(64)
    tail_only[[33, 41, 60]] = 0.5
    with_keywords = tail_only.copy()
    with_keywords[[0, 5, 17]] = 0.5

    assert TaskStateEncoder.vector_to_key(tail_only) == TaskStateEncoder.vector_to_key(with_keywords)

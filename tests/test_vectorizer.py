from collections import Counter
import math

import numpy as np

from langid_train.features.ngram_features import iter_features
from langid_train.features.vectorizer import FeatureVectorizer


def test_empty_text_gives_empty_vector() -> None:
    assert FeatureVectorizer(dimension=64).transform("") == {}


def test_distinct_features_have_unit_l2_norm() -> None:
    # dimension above the hash range, so no two distinct features share a bucket
    vec = FeatureVectorizer(dimension=2**32).transform("abc")
    values = np.asarray(list(vec.values()), dtype=np.float64)
    assert len(vec) == 6
    assert abs(float(np.sum(values**2)) - 1.0) < 1e-6


def test_counts_are_scaled_by_total_feature_count() -> None:
    text = "a b, Grüße aus 東京!"
    dimension = 97
    vec = FeatureVectorizer(dimension=dimension).transform(text)
    raw = Counter(f.to_hash() % dimension for f in iter_features(text))
    total = sum(raw.values())
    assert set(vec) == set(raw)
    for bucket, count in raw.items():
        assert math.isclose(vec[bucket], count / math.sqrt(total), rel_tol=1e-6)
    assert math.isclose(sum(vec.values()), math.sqrt(total), rel_tol=1e-5)


def test_buckets_stay_below_dimension_and_are_deterministic() -> None:
    vectorizer = FeatureVectorizer(dimension=17)
    text = "Съешь же ещё этих мягких французских булок"
    first = vectorizer.transform(text)
    assert first == vectorizer.transform(text)
    assert all(0 <= bucket < 17 for bucket in first)


def test_to_arrays_aligns_buckets_and_counts() -> None:
    vectorizer = FeatureVectorizer(dimension=32)
    vec = vectorizer.transform("hello")
    buckets, counts = vectorizer.to_arrays(vec)
    assert buckets.dtype == np.int64
    assert counts.dtype == np.float32
    for b, c in zip(buckets.tolist(), counts.tolist()):
        assert math.isclose(vec[b], c, rel_tol=1e-6)

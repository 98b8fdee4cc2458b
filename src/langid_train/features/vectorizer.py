from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Dict, Tuple

import numpy as np

from langid_train.features.ngram_features import iter_features

FeatureVector = Dict[int, float]


@dataclass(frozen=True)
class FeatureVectorizer:
    """Hashing-trick vectorizer producing length-normalised sparse bucket counts."""

    dimension: int = 4096

    def __post_init__(self) -> None:
        if int(self.dimension) < 1:
            raise ValueError("dimension must be >= 1.")

    def transform(self, text: str) -> FeatureVector:
        counts: Dict[int, float] = {}
        total = 0
        for feature in iter_features(text):
            total += 1
            bucket = feature.to_hash() % self.dimension
            counts[bucket] = counts.get(bucket, 0.0) + 1.0
        if total == 0:
            return counts
        norm = np.float32(1.0 / math.sqrt(total))
        return {bucket: float(np.float32(count) * norm) for bucket, count in counts.items()}

    def to_arrays(self, features: FeatureVector) -> Tuple[np.ndarray, np.ndarray]:
        """Split a sparse vector into aligned (buckets, counts) arrays."""
        buckets = np.fromiter(features.keys(), dtype=np.int64, count=len(features))
        counts = np.fromiter(features.values(), dtype=np.float32, count=len(features))
        return buckets, counts

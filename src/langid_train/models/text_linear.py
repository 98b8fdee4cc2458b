from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from langid_train.features.vectorizer import FeatureVector


@dataclass(eq=False)
class LinearLanguageModel:
    """Softmax regression over hashed buckets.

    ``weights`` is a flat float32 buffer laid out bucket-major, so the weight of
    language ``j`` for bucket ``b`` lives at ``b * num_languages + j``. This is
    the layout written by the header export.
    """

    language_codes: List[str]
    weights: np.ndarray
    intercepts: np.ndarray

    def __post_init__(self) -> None:
        self.language_codes = [str(code) for code in self.language_codes]
        if len(set(self.language_codes)) != len(self.language_codes):
            raise ValueError("language_codes must be unique.")
        if self.language_codes != sorted(self.language_codes):
            raise ValueError("language_codes must be sorted.")
        self.weights = np.asarray(self.weights, dtype=np.float32).reshape(-1)
        self.intercepts = np.asarray(self.intercepts, dtype=np.float32).reshape(-1)
        n = len(self.language_codes)
        if n == 0:
            raise ValueError("At least one language code is required.")
        if self.intercepts.shape[0] != n:
            raise ValueError(f"intercepts length {self.intercepts.shape[0]} != num_languages {n}.")
        if self.weights.shape[0] % n != 0:
            raise ValueError(f"weights length {self.weights.shape[0]} is not a multiple of num_languages {n}.")
        self._code_to_idx = {code: i for i, code in enumerate(self.language_codes)}

    @classmethod
    def initialize(
        cls,
        language_codes: Sequence[str],
        dimension: int,
        rng: np.random.Generator,
        init_scale: float = 0.01,
    ) -> "LinearLanguageModel":
        n = len(language_codes)
        weights = (rng.random(int(dimension) * n, dtype=np.float32) - np.float32(0.5)) * np.float32(init_scale)
        intercepts = (rng.random(n, dtype=np.float32) - np.float32(0.5)) * np.float32(init_scale)
        return cls(language_codes=list(language_codes), weights=weights, intercepts=intercepts)

    @property
    def num_languages(self) -> int:
        return len(self.language_codes)

    @property
    def dimension(self) -> int:
        return self.weights.shape[0] // self.num_languages

    @property
    def weight_matrix(self) -> np.ndarray:
        """(dimension, num_languages) view over the flat buffer."""
        return self.weights.reshape(self.dimension, self.num_languages)

    def language_index(self, code: str) -> int:
        return self._code_to_idx.get(code, -1)

    def weight_index(self, bucket: int, language_idx: int) -> int:
        return int(bucket) * self.num_languages + int(language_idx)

    def weight_at(self, bucket: int, language_idx: int) -> float:
        idx = self.weight_index(bucket, language_idx)
        if not (0 <= idx < self.weights.shape[0]):
            raise IndexError(f"bucket={bucket} language={language_idx} is outside the weight buffer.")
        return float(self.weights[idx])

    def snapshot(self, copy: bool = False) -> "LinearLanguageModel":
        """Read-only model handed to worker threads; shares memory unless ``copy``."""
        weights = self.weights.copy() if copy else self.weights.view()
        intercepts = self.intercepts.copy() if copy else self.intercepts.view()
        weights.flags.writeable = False
        intercepts.flags.writeable = False
        return LinearLanguageModel(language_codes=list(self.language_codes), weights=weights, intercepts=intercepts)

    def predict_arrays(self, buckets: np.ndarray, counts: np.ndarray) -> np.ndarray:
        scores = self.intercepts.copy()
        keep = (buckets >= 0) & (buckets < self.dimension)
        if not bool(np.all(keep)):
            buckets = buckets[keep]
            counts = counts[keep]
        if buckets.size:
            # Row-wise accumulation keeps the result independent of BLAS threading.
            scores += (self.weight_matrix[buckets] * counts[:, None]).sum(axis=0)
        return scores

    def predict(self, features: FeatureVector) -> np.ndarray:
        """Logits per language; buckets beyond the weight buffer are ignored."""
        buckets = np.fromiter(features.keys(), dtype=np.int64, count=len(features))
        counts = np.fromiter(features.values(), dtype=np.float32, count=len(features))
        return self.predict_arrays(buckets, counts)

    def predict_proba(self, features: FeatureVector) -> np.ndarray:
        return softmax(self.predict(features))

    def top_languages(self, features: FeatureVector, top_k: int = 5) -> List[Tuple[str, float]]:
        probs = self.predict_proba(features)
        k = min(max(1, int(top_k)), self.num_languages)
        idx = np.argpartition(probs, -k)[-k:]
        idx = idx[np.argsort(probs[idx])[::-1]]
        return [(self.language_codes[i], float(probs[i])) for i in idx]


def softmax(scores: np.ndarray) -> np.ndarray:
    scores = np.asarray(scores, dtype=np.float32)
    if scores.size == 0:
        return scores.copy()
    shifted = scores - np.max(scores)
    expv = np.exp(shifted)
    total = float(np.sum(expv))
    if not np.isfinite(total) or total <= 0.0:
        return np.full(scores.shape, 1.0 / scores.size, dtype=np.float32)
    return (expv / np.float32(total)).astype(np.float32, copy=False)

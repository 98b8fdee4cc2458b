from __future__ import annotations

from concurrent.futures import Executor
from dataclasses import dataclass
import logging
import math
from typing import Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

import numpy as np
from sklearn.metrics import f1_score

from langid_train.config import MIN_TARGET_PROBABILITY
from langid_train.data.load_sentences import TrainingExample
from langid_train.features.vectorizer import FeatureVectorizer
from langid_train.models.text_linear import LinearLanguageModel, softmax

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

# Chunks handed out per worker; idle threads pick up the remaining chunks.
CHUNKS_PER_WORKER = 4


@dataclass(frozen=True)
class ExampleGradient:
    loss: float
    weight_indices: np.ndarray
    weight_gradients: np.ndarray
    intercept_gradients: np.ndarray


@dataclass(frozen=True)
class BatchResult:
    total_loss: float
    num_examples: int
    weight_indices: np.ndarray
    weight_gradients: np.ndarray
    intercept_indices: np.ndarray
    intercept_gradients: np.ndarray

    @property
    def average_loss(self) -> float:
        if self.num_examples == 0:
            return 0.0
        return float(self.total_loss / self.num_examples)

    @property
    def weight_updates(self) -> Dict[int, float]:
        return {int(i): float(g) for i, g in zip(self.weight_indices, self.weight_gradients)}

    @property
    def intercept_updates(self) -> Dict[int, float]:
        return {int(i): float(g) for i, g in zip(self.intercept_indices, self.intercept_gradients)}


@dataclass(frozen=True)
class EvaluationResult:
    n: int
    correct: int
    accuracy: float
    macro_f1: float

    def as_dict(self) -> Dict[str, float]:
        return {"n": float(self.n), "accuracy": self.accuracy, "macro_f1": self.macro_f1}


def _partition(items: Sequence[T], parts: int) -> List[Sequence[T]]:
    parts = max(1, min(int(parts), len(items)))
    size, extra = divmod(len(items), parts)
    chunks: List[Sequence[T]] = []
    start = 0
    for i in range(parts):
        end = start + size + (1 if i < extra else 0)
        chunks.append(items[start:end])
        start = end
    return chunks


def parallel_map(
    fn: Callable[[T], R],
    items: Sequence[T],
    executor: Optional[Executor] = None,
    num_workers: int = 1,
) -> List[R]:
    """Apply ``fn`` to every item, preserving input order in the returned list."""
    if not items:
        return []
    if executor is None or num_workers <= 1 or len(items) == 1:
        return [fn(item) for item in items]

    def _run_chunk(chunk: Sequence[T]) -> List[R]:
        return [fn(item) for item in chunk]

    chunks = _partition(items, num_workers * CHUNKS_PER_WORKER)
    out: List[R] = []
    for chunk_result in executor.map(_run_chunk, chunks):
        out.extend(chunk_result)
    return out


def _resolve_example(
    model: LinearLanguageModel,
    vectorizer: FeatureVectorizer,
    example: TrainingExample,
) -> Optional[Tuple[int, np.ndarray, np.ndarray]]:
    target_idx = model.language_index(example.language_code)
    if target_idx < 0:
        return None
    features = vectorizer.transform(example.sentence)
    if not features:
        return None
    buckets, counts = vectorizer.to_arrays(features)
    keep = buckets < model.dimension
    return target_idx, buckets[keep], counts[keep]


def compute_example_gradient(
    model: LinearLanguageModel,
    vectorizer: FeatureVectorizer,
    example: TrainingExample,
) -> Optional[ExampleGradient]:
    """Cross-entropy loss and gradients for one example, or None when it carries no signal."""
    resolved = _resolve_example(model, vectorizer, example)
    if resolved is None:
        return None
    target_idx, buckets, counts = resolved

    probs = softmax(model.predict_arrays(buckets, counts))
    loss = -math.log(max(float(probs[target_idx]), MIN_TARGET_PROBABILITY))

    delta = probs.astype(np.float32, copy=True)
    delta[target_idx] -= np.float32(1.0)

    n = model.num_languages
    weight_indices = (buckets[:, None] * n + np.arange(n, dtype=np.int64)[None, :]).reshape(-1)
    weight_gradients = (counts[:, None] * delta[None, :]).astype(np.float32, copy=False).reshape(-1)
    return ExampleGradient(
        loss=float(loss),
        weight_indices=weight_indices,
        weight_gradients=weight_gradients,
        intercept_gradients=delta,
    )


def reduce_gradients(results: Sequence[Optional[ExampleGradient]], num_languages: int) -> BatchResult:
    """Sum per-example gradients by index, in input order, on the calling thread."""
    total_loss = 0.0
    num_examples = 0
    index_parts: List[np.ndarray] = []
    grad_parts: List[np.ndarray] = []
    intercepts = np.zeros(int(num_languages), dtype=np.float32)

    for result in results:
        if result is None:
            continue
        total_loss += result.loss
        num_examples += 1
        index_parts.append(result.weight_indices)
        grad_parts.append(result.weight_gradients)
        intercepts += result.intercept_gradients

    if not index_parts:
        empty_idx = np.zeros(0, dtype=np.int64)
        empty_grad = np.zeros(0, dtype=np.float32)
        return BatchResult(
            total_loss=0.0,
            num_examples=0,
            weight_indices=empty_idx,
            weight_gradients=empty_grad,
            intercept_indices=empty_idx.copy(),
            intercept_gradients=empty_grad.copy(),
        )

    all_idx = np.concatenate(index_parts)
    all_grad = np.concatenate(grad_parts)
    touched, inverse = np.unique(all_idx, return_inverse=True)
    summed = np.zeros(touched.shape[0], dtype=np.float32)
    # unbuffered and applied in order, so the sum does not depend on thread scheduling
    np.add.at(summed, inverse, all_grad)

    return BatchResult(
        total_loss=float(total_loss),
        num_examples=num_examples,
        weight_indices=touched,
        weight_gradients=summed,
        intercept_indices=np.arange(int(num_languages), dtype=np.int64),
        intercept_gradients=intercepts,
    )


def process_batch(
    model: LinearLanguageModel,
    examples: Sequence[TrainingExample],
    vectorizer: FeatureVectorizer,
    executor: Optional[Executor] = None,
    num_workers: int = 1,
) -> BatchResult:
    snapshot = model.snapshot()

    def _gradient(example: TrainingExample) -> Optional[ExampleGradient]:
        return compute_example_gradient(snapshot, vectorizer, example)

    results = parallel_map(_gradient, examples, executor=executor, num_workers=num_workers)
    batch = reduce_gradients(results, snapshot.num_languages)
    skipped = len(examples) - batch.num_examples
    if skipped:
        LOGGER.debug("Skipped %s/%s batch examples (unknown language or no features).", skipped, len(examples))
    return batch


def evaluate_examples(
    model: LinearLanguageModel,
    examples: Sequence[TrainingExample],
    vectorizer: FeatureVectorizer,
    executor: Optional[Executor] = None,
    num_workers: int = 1,
) -> EvaluationResult:
    """Top-1 accuracy over examples with a known language and at least one feature."""
    snapshot = model.snapshot()

    def _predict(example: TrainingExample) -> Optional[Tuple[int, int]]:
        resolved = _resolve_example(snapshot, vectorizer, example)
        if resolved is None:
            return None
        target_idx, buckets, counts = resolved
        scores = snapshot.predict_arrays(buckets, counts)
        return target_idx, int(np.argmax(scores))

    pairs = [p for p in parallel_map(_predict, examples, executor=executor, num_workers=num_workers) if p is not None]
    if not pairs:
        return EvaluationResult(n=0, correct=0, accuracy=0.0, macro_f1=0.0)

    gold = np.asarray([p[0] for p in pairs], dtype=np.int64)
    preds = np.asarray([p[1] for p in pairs], dtype=np.int64)
    correct = int(np.sum(gold == preds))
    return EvaluationResult(
        n=int(gold.shape[0]),
        correct=correct,
        accuracy=float(correct / gold.shape[0]),
        macro_f1=float(f1_score(gold, preds, average="macro", zero_division=0)),
    )

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from enum import Enum
import logging
import math
import time
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from tqdm import tqdm

from langid_train.batch_gradients import BatchResult, EvaluationResult, evaluate_examples, process_batch
from langid_train.config import TrainingConfig, resolve_num_workers, validate_config
from langid_train.data.load_sentences import TrainingExample, balance_examples
from langid_train.features.vectorizer import FeatureVectorizer
from langid_train.models.text_linear import LinearLanguageModel
from langid_train.text_utils import estimate_remaining_seconds, format_duration

LOGGER = logging.getLogger(__name__)


class TrainerState(str, Enum):
    INITIALIZING = "initializing"
    TRAINING = "training"
    EVALUATING = "evaluating"
    EARLY_STOPPED = "early_stopped"
    COMPLETED = "completed"


TERMINAL_STATES = frozenset({TrainerState.EARLY_STOPPED, TrainerState.COMPLETED})


class EarlyStopping:
    """Counts consecutive epochs whose loss is not strictly below the best seen so far."""

    def __init__(self, patience: int) -> None:
        self.patience = int(patience)
        self.best_loss = math.inf
        self.counter = 0

    def update(self, loss: float) -> bool:
        if loss < self.best_loss:
            self.best_loss = float(loss)
            self.counter = 0
            return False
        self.counter += 1
        return self.counter >= self.patience


@dataclass
class EpochStats:
    epoch: int
    avg_loss: float
    num_batches: int
    train_examples: int
    epoch_seconds: float
    elapsed_seconds: float
    eta_seconds: float
    test_accuracy: Optional[float] = None
    test_macro_f1: Optional[float] = None
    test_n: Optional[int] = None

    def as_row(self) -> Dict[str, object]:
        return asdict(self)


@dataclass
class TrainingSummary:
    state: TrainerState
    epochs_run: int
    best_loss: float
    train_size: int
    test_size: int
    elapsed_seconds: float
    history: List[EpochStats] = field(default_factory=list)
    test_metrics: Optional[EvaluationResult] = None

    @property
    def stopped_early(self) -> bool:
        return self.state == TrainerState.EARLY_STOPPED


class LanguageDetectorTrainer:
    """Owns the model and is its only writer.

    Batches are scored by worker threads against a read-only snapshot; the
    aggregated update is applied here once every worker has returned.
    """

    def __init__(
        self,
        language_codes: Sequence[str],
        config: TrainingConfig = TrainingConfig(),
        language_names: Optional[Mapping[str, str]] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        validate_config(config)
        codes = sorted({str(code) for code in language_codes})
        if not codes:
            raise ValueError("At least one language code is required to train.")
        if codes != list(language_codes):
            LOGGER.warning("Language codes were not unique and sorted; using %s sorted codes.", len(codes))

        self.state = TrainerState.INITIALIZING
        self.config = config
        self.language_names: Dict[str, str] = dict(language_names or {})
        self.rng = rng if rng is not None else np.random.default_rng(config.seed)
        self.vectorizer = FeatureVectorizer(dimension=int(config.dimension))
        self.model = LinearLanguageModel.initialize(
            codes,
            dimension=int(config.dimension),
            rng=self.rng,
            init_scale=float(config.init_scale),
        )
        self.num_workers = resolve_num_workers(config.num_worker_threads)
        self.history: List[EpochStats] = []
        self._executor: Optional[ThreadPoolExecutor] = None
        LOGGER.info(
            "Initialized model: languages=%s dimension=%s weights=%s workers=%s",
            self.model.num_languages,
            self.model.dimension,
            self.model.weights.shape[0],
            self.num_workers,
        )

    @property
    def language_codes(self) -> List[str]:
        return self.model.language_codes

    @contextmanager
    def _worker_pool(self) -> Iterator[Optional[ThreadPoolExecutor]]:
        if self._executor is not None or self.num_workers <= 1:
            yield self._executor
            return
        with ThreadPoolExecutor(max_workers=self.num_workers, thread_name_prefix="langid-grad") as executor:
            self._executor = executor
            try:
                yield executor
            finally:
                self._executor = None

    def _ensure_not_terminal(self) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"Trainer is in terminal state '{self.state.value}'; the model can no longer change.")

    def prepare_examples(self, examples: Sequence[TrainingExample]) -> List[TrainingExample]:
        if int(self.config.samples_per_language) > 0:
            return balance_examples(examples, self.language_codes, int(self.config.samples_per_language), self.rng)
        return list(examples)

    def split_examples(self, examples: Sequence[TrainingExample]) -> Tuple[List[TrainingExample], List[TrainingExample]]:
        order = self.rng.permutation(len(examples))
        shuffled = [examples[i] for i in order]
        split_idx = int(len(shuffled) * float(self.config.train_test_split))
        return shuffled[:split_idx], shuffled[split_idx:]

    def apply_batch_result(self, result: BatchResult) -> None:
        """SGD step with the L2 penalty applied to touched weights only."""
        self._ensure_not_terminal()
        lr = np.float32(self.config.learning_rate)
        reg = np.float32(self.config.regularization)
        idx = result.weight_indices
        if idx.size:
            weights = self.model.weights
            current = weights[idx]
            weights[idx] = current - lr * (result.weight_gradients + reg * current)
        if result.intercept_indices.size:
            self.model.intercepts[result.intercept_indices] -= lr * result.intercept_gradients

    def train_step(self, batch: Sequence[TrainingExample]) -> float:
        with self._worker_pool() as executor:
            result = process_batch(
                self.model,
                batch,
                self.vectorizer,
                executor=executor,
                num_workers=self.num_workers,
            )
        self.apply_batch_result(result)
        return result.average_loss

    def train_epoch(
        self,
        train_examples: Sequence[TrainingExample],
        epoch: int = 1,
        show_progress: bool = False,
    ) -> Tuple[float, int]:
        """Shuffle, run every batch, and return (mean of batch losses, batch count)."""
        self._ensure_not_terminal()
        order = self.rng.permutation(len(train_examples))
        epoch_data = [train_examples[i] for i in order]
        batch_size = int(self.config.batch_size)
        total_loss = 0.0
        num_batches = 0
        with self._worker_pool(), tqdm(
            total=len(epoch_data),
            desc=f"epoch {epoch}/{self.config.epochs}",
            unit="ex",
            disable=not show_progress,
            leave=False,
        ) as pbar:
            for start in range(0, len(epoch_data), batch_size):
                batch = epoch_data[start : start + batch_size]
                total_loss += self.train_step(batch)
                num_batches += 1
                pbar.update(len(batch))
        avg_loss = total_loss / num_batches if num_batches else 0.0
        return float(avg_loss), num_batches

    def evaluate(self, examples: Sequence[TrainingExample]) -> EvaluationResult:
        with self._worker_pool() as executor:
            return evaluate_examples(
                self.model,
                examples,
                self.vectorizer,
                executor=executor,
                num_workers=self.num_workers,
            )

    def _should_evaluate(self, epoch: int) -> bool:
        return (epoch - 1) % int(self.config.eval_every) == 0 or epoch == int(self.config.epochs)

    def train(
        self,
        examples: Sequence[TrainingExample],
        show_progress: bool = True,
        on_epoch_end: Optional[Callable[[EpochStats], None]] = None,
    ) -> TrainingSummary:
        self._ensure_not_terminal()
        data = self.prepare_examples(examples)
        train_data, test_data = self.split_examples(data)
        if not train_data:
            raise ValueError("No training examples left after the train/test split.")
        LOGGER.info("Training on %s examples, testing on %s examples", len(train_data), len(test_data))

        epochs = int(self.config.epochs)
        stopper = EarlyStopping(self.config.early_stopping_patience)
        last_metrics: Optional[EvaluationResult] = None
        epochs_run = 0
        start_time = time.monotonic()

        with self._worker_pool():
            for epoch in range(1, epochs + 1):
                self.state = TrainerState.TRAINING
                epoch_start = time.monotonic()
                avg_loss, num_batches = self.train_epoch(train_data, epoch=epoch, show_progress=show_progress)
                epochs_run = epoch

                self.state = TrainerState.EVALUATING
                elapsed = time.monotonic() - start_time
                eta = estimate_remaining_seconds(elapsed, epoch, epochs)
                stats = EpochStats(
                    epoch=epoch,
                    avg_loss=avg_loss,
                    num_batches=num_batches,
                    train_examples=len(train_data),
                    epoch_seconds=float(time.monotonic() - epoch_start),
                    elapsed_seconds=float(elapsed),
                    eta_seconds=float(eta),
                )
                if self._should_evaluate(epoch):
                    last_metrics = self.evaluate(test_data)
                    stats.test_accuracy = last_metrics.accuracy
                    stats.test_macro_f1 = last_metrics.macro_f1
                    stats.test_n = last_metrics.n
                    LOGGER.info(
                        "Epoch %s: Avg Loss = %.4f, Test Accuracy = %.2f%% | ETA: %s",
                        epoch,
                        avg_loss,
                        last_metrics.accuracy * 100.0,
                        format_duration(eta),
                    )
                else:
                    LOGGER.info("Epoch %s: Avg Loss = %.4f | ETA: %s", epoch, avg_loss, format_duration(eta))
                self.history.append(stats)
                if on_epoch_end is not None:
                    on_epoch_end(stats)

                if stopper.update(avg_loss):
                    self.state = TrainerState.EARLY_STOPPED
                    LOGGER.info("Early stopping at epoch %s", epoch)
                    break
            else:
                self.state = TrainerState.COMPLETED

        total = time.monotonic() - start_time
        LOGGER.info("Training completed in %s", format_duration(total))
        return TrainingSummary(
            state=self.state,
            epochs_run=epochs_run,
            best_loss=float(stopper.best_loss),
            train_size=len(train_data),
            test_size=len(test_data),
            elapsed_seconds=float(total),
            history=list(self.history),
            test_metrics=last_metrics,
        )

from __future__ import annotations

from dataclasses import dataclass, fields
import logging
import os
from typing import List, Optional

LOGGER = logging.getLogger(__name__)

FEATURE_SEED = 3_242_157_231
UNICODE_SEED_OFFSET = 2
UNICODE_CLASS_SEED_OFFSET = 4

BIGRAM_MASK = (1 << 16) - 1
TRIGRAM_MASK = (1 << 24) - 1
U32_MASK = 0xFFFFFFFF

# Japanese / CJK ranges closing the codepoint class table.
JP_PUNCT_START = 0x3000
JP_PUNCT_END = 0x303F
JP_HIRAGANA_START = 0x3040
JP_HIRAGANA_END = 0x309F
JP_KATAKANA_START = 0x30A0
JP_KATAKANA_END = 0x30FF
CJK_KANJI_START = 0x4E00
CJK_KANJI_END = 0x9FAF
JP_HALFWIDTH_KATAKANA_START = 0xFF61
JP_HALFWIDTH_KATAKANA_END = 0xFF90

CODEPOINT_CLASS_BOUNDARIES = (
    160, 161, 171, 172, 173, 174, 187, 192, 196, 199, 200, 201, 202, 205, 214, 220, 223,
    224, 225, 226, 227, 228, 231, 232, 233, 234, 235, 236, 237, 238, 239, 242, 243, 244,
    245, 246, 249, 250, 251, 252, 333, 339,
    JP_PUNCT_START, JP_PUNCT_END, JP_HIRAGANA_START, JP_HIRAGANA_END,
    JP_KATAKANA_START, JP_KATAKANA_END, CJK_KANJI_START, CJK_KANJI_END,
    JP_HALFWIDTH_KATAKANA_START, JP_HALFWIDTH_KATAKANA_END,
)

MIN_TARGET_PROBABILITY = 1e-10

DEFAULT_SENTENCES_CSV = "dataset/sentences.csv"
DEFAULT_LANGUAGE_NAMES_JSON = "dataset/lan_to_language.json"
ARTIFACT_FILENAME = "langid_model.joblib"
HEADER_FILENAME = "langid_weights.h"


@dataclass(frozen=True)
class TrainingConfig:
    learning_rate: float = 0.01
    epochs: int = 100
    regularization: float = 0.001
    dimension: int = 4096
    train_test_split: float = 0.8
    batch_size: int = 32
    early_stopping_patience: int = 10
    num_worker_threads: int = 0
    samples_per_language: int = 0
    eval_every: int = 10
    seed: Optional[int] = None
    init_scale: float = 0.01


@dataclass(frozen=True)
class ExportConfig:
    decimals: int = 8
    values_per_line: int = 8


def config_field_names() -> List[str]:
    return [f.name for f in fields(TrainingConfig)]


def validate_config(config: TrainingConfig) -> None:
    if not (0.0 < float(config.train_test_split) < 1.0):
        raise ValueError("train_test_split must be strictly between 0 and 1.")
    if float(config.learning_rate) <= 0.0:
        raise ValueError("learning_rate must be > 0.")
    if float(config.regularization) < 0.0:
        raise ValueError("regularization must be >= 0.")
    if int(config.dimension) < 1:
        raise ValueError("dimension must be >= 1.")
    if int(config.epochs) < 1:
        raise ValueError("epochs must be >= 1.")
    if int(config.batch_size) < 1:
        raise ValueError("batch_size must be >= 1.")
    if int(config.early_stopping_patience) < 0:
        raise ValueError("early_stopping_patience must be >= 0.")
    if int(config.eval_every) < 1:
        raise ValueError("eval_every must be >= 1.")
    if int(config.samples_per_language) < 0:
        raise ValueError("samples_per_language must be >= 0 (0 disables balancing).")


def resolve_num_workers(requested: object) -> int:
    """Map the configured thread count to a usable pool size (0 means all cores)."""
    detected = os.cpu_count() or 1
    if isinstance(requested, bool) or not isinstance(requested, int):
        LOGGER.warning("num_worker_threads=%r is not an integer; using %s threads.", requested, detected)
        return detected
    if requested < 0:
        LOGGER.warning("num_worker_threads=%s is negative; using %s threads.", requested, detected)
        return detected
    if requested == 0:
        return detected
    return requested

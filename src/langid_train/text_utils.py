from __future__ import annotations

import logging
from typing import List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from langid_train.data.load_sentences import TrainingExample, language_counts

LOGGER = logging.getLogger(__name__)


def format_duration(seconds: float) -> str:
    seconds = max(0.0, float(seconds))
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    if hours > 0:
        return f"{hours}h {minutes:02d}m {secs:02d}s"
    if minutes > 0:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"


def estimate_remaining_seconds(elapsed_seconds: float, epochs_done: int, epochs_total: int) -> float:
    if epochs_done <= 0:
        return 0.0
    remaining = max(0, int(epochs_total) - int(epochs_done))
    return float(elapsed_seconds) / float(epochs_done) * float(remaining)


def display_name(code: str, language_names: Optional[Mapping[str, str]]) -> str:
    if not language_names:
        return code
    return str(language_names.get(code, code))


def language_distribution(
    examples: Sequence[TrainingExample],
    language_names: Optional[Mapping[str, str]] = None,
) -> pd.DataFrame:
    """Per-language example counts, most frequent first."""
    counts = language_counts(examples)
    rows = [
        {"language_code": code, "name": display_name(code, language_names), "examples": int(n)}
        for code, n in counts.items()
    ]
    df = pd.DataFrame(rows, columns=["language_code", "name", "examples"])
    if df.empty:
        return df
    return df.sort_values(["examples", "language_code"], ascending=[False, True]).reset_index(drop=True)


def log_language_stats(
    examples: Sequence[TrainingExample],
    language_names: Optional[Mapping[str, str]] = None,
    top_n: int = 20,
) -> pd.DataFrame:
    df = language_distribution(examples, language_names)
    LOGGER.info("Language distribution in dataset (%s languages):", len(df))
    for row in df.head(top_n).itertuples(index=False):
        LOGGER.info("  %s: %s (%s examples)", row.language_code, row.name, row.examples)
    if len(df) > top_n:
        LOGGER.info("  ... and %s more languages", len(df) - top_n)
    return df


def format_predictions(
    preds: Sequence[Tuple[str, float]],
    language_names: Optional[Mapping[str, str]] = None,
) -> List[str]:
    return [
        f"{rank}. {code}\t{display_name(code, language_names)}\t{prob:.4f}"
        for rank, (code, prob) in enumerate(preds, start=1)
    ]

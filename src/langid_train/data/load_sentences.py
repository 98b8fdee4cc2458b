from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

LOGGER = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["id", "lan_code", "sentence"]
_COLUMN_ALIASES = {"language_code": "lan_code", "lang": "lan_code", "text": "sentence"}


class DatasetError(ValueError):
    """Raised when a training file cannot be read or does not match the expected schema."""


@dataclass(frozen=True)
class TrainingExample:
    id: int
    language_code: str
    sentence: str


def _canonical_columns(df: pd.DataFrame) -> pd.DataFrame:
    out = df.copy()
    renamed = {}
    for col in out.columns:
        key = str(col).strip().lower()
        renamed[col] = _COLUMN_ALIASES.get(key, key)
    out = out.rename(columns=renamed)
    return out


def load_sentences_csv(csv_path: str | Path, sep: str = ",", max_rows: Optional[int] = None) -> List[TrainingExample]:
    """Load ``id,lan_code,sentence`` rows into immutable training examples."""
    csv_path = Path(csv_path)
    if not csv_path.is_file():
        raise FileNotFoundError(f"Training CSV not found: {csv_path}")
    try:
        df = pd.read_csv(csv_path, sep=sep, dtype=str, nrows=max_rows, keep_default_na=False)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
        raise DatasetError(f"Could not parse training CSV {csv_path}: {exc}") from exc

    df = _canonical_columns(df)
    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise DatasetError(f"Training CSV {csv_path} is missing columns {missing}.")

    ids = pd.to_numeric(df["id"].str.strip(), errors="coerce")
    bad_rows = ids.isna()
    if bool(bad_rows.any()):
        first_bad = int(np.flatnonzero(bad_rows.to_numpy())[0])
        raise DatasetError(
            f"Training CSV {csv_path} has {int(bad_rows.sum())} rows with a non-integer id "
            f"(first at data row {first_bad + 1})."
        )

    codes = df["lan_code"].astype(str).str.strip()
    examples = [
        TrainingExample(id=int(i), language_code=code, sentence=str(sentence))
        for i, code, sentence in zip(ids.tolist(), codes.tolist(), df["sentence"].tolist())
    ]
    LOGGER.info("Loaded %s training examples from %s", len(examples), csv_path)
    return examples


def load_language_names(json_path: str | Path) -> Dict[str, str]:
    json_path = Path(json_path)
    if not json_path.is_file():
        raise FileNotFoundError(f"Language mapping not found: {json_path}")
    try:
        data = json.loads(json_path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise DatasetError(f"Could not parse language mapping {json_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise DatasetError(f"Language mapping {json_path} must be a JSON object of code -> name.")
    return {str(code): str(name) for code, name in data.items()}


def language_codes_from_examples(examples: Sequence[TrainingExample]) -> List[str]:
    return sorted({ex.language_code for ex in examples})


def language_counts(examples: Sequence[TrainingExample]) -> Counter:
    return Counter(ex.language_code for ex in examples)


def balance_examples(
    examples: Sequence[TrainingExample],
    language_codes: Sequence[str],
    samples_per_language: int,
    rng: np.random.Generator,
) -> List[TrainingExample]:
    """Resample every known language to exactly ``samples_per_language`` examples.

    Languages with enough data are shuffled and truncated; smaller ones keep all
    of their examples and are topped up with random duplicates. Languages
    outside ``language_codes`` are dropped. The result is shuffled.
    """
    target = int(samples_per_language)
    if target <= 0:
        return list(examples)

    by_language: Dict[str, List[TrainingExample]] = {}
    for ex in examples:
        by_language.setdefault(ex.language_code, []).append(ex)

    balanced: List[TrainingExample] = []
    upsampled = 0
    downsampled = 0
    for code in language_codes:
        pool = by_language.get(code)
        if not pool:
            continue
        original = len(pool)
        if original >= target:
            order = rng.permutation(original)[:target]
            picked = [pool[i] for i in order]
            downsampled += 1
        else:
            extra = rng.integers(0, original, size=target - original)
            picked = list(pool) + [pool[i] for i in extra]
            upsampled += 1
        LOGGER.debug("  %s: %s -> %s samples", code, original, len(picked))
        balanced.extend(picked)

    order = rng.permutation(len(balanced))
    balanced = [balanced[i] for i in order]
    LOGGER.info(
        "Balanced dataset: %s samples (%s per language), upsampled=%s downsampled=%s",
        len(balanced),
        target,
        upsampled,
        downsampled,
    )
    return balanced

"""Artifacts produced by a training run.

Two outputs are written:

* a joblib artifact dict (model arrays, language codes, config, history) that
  ``predict_text`` can reload, dumped atomically through a ``.tmp`` file;
* a generated C++ header for the downstream inference engine containing the
  ``Lang`` enum, a ``three_letter_code`` switch, the ``LANGUAGES`` array and
  the flattened ``WEIGHTS`` / ``INTERCEPTS`` tables.

The header mirrors the in-memory layout exactly: ``WEIGHTS`` is bucket-major,
``num_languages`` consecutive values per hash bucket.
"""

from __future__ import annotations

from dataclasses import asdict
import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import joblib
import numpy as np
import pandas as pd

from langid_train.config import ExportConfig, TrainingConfig
from langid_train.models.text_linear import LinearLanguageModel
from langid_train.text_utils import display_name

LOGGER = logging.getLogger(__name__)

MODEL_TYPE = "langid_hashed_softmax"


def lang_code_to_enum(code: str) -> str:
    if not code:
        return code
    return code[0].upper() + code[1:]


def _format_float_rows(values: Iterable[float], export: ExportConfig) -> List[str]:
    formatted = [f"{float(v):.{export.decimals}f}f" for v in values]
    lines: List[str] = []
    per_line = max(1, int(export.values_per_line))
    for start in range(0, len(formatted), per_line):
        chunk = formatted[start : start + per_line]
        is_last = start + per_line >= len(formatted)
        lines.append("    " + ", ".join(chunk) + ("" if is_last else ","))
    return lines


def render_cpp_header(
    model: LinearLanguageModel,
    language_names: Optional[Mapping[str, str]] = None,
    config: Optional[TrainingConfig] = None,
    export: ExportConfig = ExportConfig(),
) -> str:
    codes = model.language_codes
    lines: List[str] = [
        "// Auto-generated language detection weights",
        f"// Generated from {len(codes)} languages with {model.dimension} features",
    ]
    if config is not None and int(config.samples_per_language) > 0:
        lines.append(f"// Trained with {int(config.samples_per_language)} samples per language (balanced)")
    lines.extend(["#pragma once", "#include <array>", "#include <string>", ""])

    lines.append("enum class Lang {")
    for code in codes:
        lines.append(f"    {lang_code_to_enum(code)},  // {display_name(code, language_names)}")
    lines.extend(["};", ""])

    lines.append("std::string three_letter_code(Lang language) {")
    lines.append("    switch (language) {")
    for code in codes:
        lines.append(f'        case Lang::{lang_code_to_enum(code)}: return "{code}";')
    lines.extend(["    }", '    return "unknown";', "}", ""])

    lines.append(f"const std::array<Lang, {len(codes)}> LANGUAGES = {{")
    for code in codes:
        lines.append(f"    Lang::{lang_code_to_enum(code)},")
    lines.extend(["};", ""])

    lines.append(f"const std::array<float, {model.weights.shape[0]}> WEIGHTS = {{")
    lines.extend(_format_float_rows(model.weights, export))
    lines.extend(["};", ""])

    lines.append(f"const float INTERCEPTS[{model.intercepts.shape[0]}] = {{")
    lines.extend(_format_float_rows(model.intercepts, export))
    lines.append("};")
    return "\n".join(lines) + "\n"


def export_cpp_header(
    output_path: Path,
    model: LinearLanguageModel,
    language_names: Optional[Mapping[str, str]] = None,
    config: Optional[TrainingConfig] = None,
    export: ExportConfig = ExportConfig(),
) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(render_cpp_header(model, language_names, config, export), encoding="utf-8")
    LOGGER.info("Weights exported to %s", output_path)
    return output_path


def build_artifact(
    model: LinearLanguageModel,
    config: TrainingConfig,
    language_names: Optional[Mapping[str, str]] = None,
    metrics: Optional[Mapping[str, object]] = None,
    history: Sequence[Mapping[str, object]] = (),
) -> Dict[str, object]:
    return {
        "model_type": MODEL_TYPE,
        "language_codes": list(model.language_codes),
        "language_names": dict(language_names or {}),
        "weights": np.asarray(model.weights, dtype=np.float32).copy(),
        "intercepts": np.asarray(model.intercepts, dtype=np.float32).copy(),
        "config": asdict(config),
        "metrics": dict(metrics or {}),
        "history": [dict(row) for row in history],
    }


def save_artifact(obj: Mapping[str, object], target_path: Path) -> Path:
    target_path = Path(target_path)
    target_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = target_path.with_suffix(target_path.suffix + ".tmp")
    joblib.dump(dict(obj), tmp_path)
    tmp_path.replace(target_path)
    return target_path


def load_artifact(path: Path) -> Dict[str, object]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Model artifact not found: {path}")
    artifact = joblib.load(path)
    if not isinstance(artifact, dict):
        raise ValueError(f"Model artifact is not a valid artifact dict: {path}")
    required_keys = ["language_codes", "weights", "intercepts", "config"]
    missing = [k for k in required_keys if k not in artifact]
    if missing:
        raise ValueError(f"Model artifact missing keys {missing}: {path}")
    model_type = str(artifact.get("model_type", ""))
    if model_type and model_type != MODEL_TYPE:
        raise ValueError(f"Unsupported model_type={model_type!r} in {path}")
    return artifact


def model_from_artifact(artifact: Mapping[str, object]) -> LinearLanguageModel:
    model = LinearLanguageModel(
        language_codes=list(artifact["language_codes"]),  # type: ignore[arg-type]
        weights=np.asarray(artifact["weights"], dtype=np.float32),
        intercepts=np.asarray(artifact["intercepts"], dtype=np.float32),
    )
    config = artifact.get("config")
    if isinstance(config, dict) and "dimension" in config and int(config["dimension"]) != model.dimension:
        raise ValueError(
            f"Artifact dimension {config['dimension']} does not match weights ({model.dimension} buckets)."
        )
    return model


def save_history_table(output_dir: Path, rows: Sequence[Mapping[str, object]]) -> None:
    if not rows:
        return
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    df = pd.DataFrame([dict(r) for r in rows])
    df.to_csv(output_dir / "epoch_history.csv", index=False)
    with (output_dir / "epoch_history.json").open("w", encoding="utf-8") as f:
        json.dump([dict(r) for r in rows], f, indent=2)

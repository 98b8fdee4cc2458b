import json

import numpy as np
import pandas as pd
import pytest

from langid_train.config import ARTIFACT_FILENAME, HEADER_FILENAME, TrainingConfig
from langid_train.export_weights import build_artifact, load_artifact, save_artifact
from langid_train.models.text_linear import LinearLanguageModel
from langid_train.predict_text import predict_text
from langid_train.train_text import _build_arg_parser, config_from_args, run_training


def test_predict_text_ranks_languages(tmp_path) -> None:
    model = LinearLanguageModel(
        language_codes=["deu", "eng", "fra"],
        weights=np.zeros(3 * 16, dtype=np.float32),
        intercepts=np.array([0.0, 2.0, 1.0], dtype=np.float32),
    )
    path = save_artifact(build_artifact(model, TrainingConfig(dimension=16)), tmp_path / "m.joblib")
    preds = predict_text(path, "hello", top_k=2)
    assert [code for code, _ in preds] == ["eng", "fra"]
    with pytest.raises(ValueError):
        predict_text(path, "")


def test_config_from_args_maps_flags() -> None:
    args = _build_arg_parser().parse_args(["--epochs", "5", "--dimension", "256", "--num_worker_threads", "2"])
    config = config_from_args(args)
    assert config.epochs == 5
    assert config.dimension == 256
    assert config.num_worker_threads == 2
    assert config.learning_rate == TrainingConfig().learning_rate


def test_run_training_writes_artifacts(tmp_path) -> None:
    rows = []
    for i in range(30):
        rows.append({"id": 2 * i, "lan_code": "aaa", "sentence": "a" * (i % 7 + 1)})
        rows.append({"id": 2 * i + 1, "lan_code": "bbb", "sentence": "b" * (i % 5 + 1)})
    csv_path = tmp_path / "sentences.csv"
    pd.DataFrame(rows).to_csv(csv_path, index=False)
    names_path = tmp_path / "names.json"
    names_path.write_text(json.dumps({"aaa": "Language A", "bbb": "Language B"}), encoding="utf-8")

    config = TrainingConfig(epochs=2, dimension=128, batch_size=8, num_worker_threads=2, seed=5)
    out_dir = tmp_path / "out"
    summary = run_training(csv_path, out_dir, config, language_names_path=names_path, show_progress=False)

    assert summary.epochs_run == 2
    assert (out_dir / "epoch_history.csv").exists()
    header = (out_dir / HEADER_FILENAME).read_text(encoding="utf-8")
    assert "    Aaa,  // Language A" in header
    artifact = load_artifact(out_dir / ARTIFACT_FILENAME)
    assert artifact["language_codes"] == ["aaa", "bbb"]
    assert artifact["metrics"]["epochs_run"] == 2
    assert len(artifact["history"]) == 2

import numpy as np
import pytest

from langid_train.config import ExportConfig, TrainingConfig
from langid_train.export_weights import (
    build_artifact,
    export_cpp_header,
    lang_code_to_enum,
    load_artifact,
    model_from_artifact,
    render_cpp_header,
    save_artifact,
    save_history_table,
)
from langid_train.models.text_linear import LinearLanguageModel


def _model() -> LinearLanguageModel:
    return LinearLanguageModel(
        language_codes=["deu", "eng"],
        weights=np.array([0.1, -0.25, 0.0, 1.0], dtype=np.float32),
        intercepts=np.array([0.5, -0.125], dtype=np.float32),
    )


def test_render_cpp_header_layout() -> None:
    header = render_cpp_header(_model(), {"deu": "German"}, TrainingConfig(dimension=2))
    lines = header.splitlines()
    assert lines[0] == "// Auto-generated language detection weights"
    assert lines[1] == "// Generated from 2 languages with 2 features"
    assert "#pragma once" in lines
    assert "    Deu,  // German" in lines
    assert "    Eng,  // eng" in lines
    assert '        case Lang::Eng: return "eng";' in lines
    assert "const std::array<Lang, 2> LANGUAGES = {" in lines
    idx = lines.index("const std::array<float, 4> WEIGHTS = {")
    assert lines[idx + 1] == "    0.10000000f, -0.25000000f, 0.00000000f, 1.00000000f"
    assert lines[idx + 2] == "};"
    idx = lines.index("const float INTERCEPTS[2] = {")
    assert lines[idx + 1] == "    0.50000000f, -0.12500000f"


def test_render_cpp_header_wraps_values() -> None:
    header = render_cpp_header(_model(), export=ExportConfig(decimals=2, values_per_line=3))
    lines = header.splitlines()
    idx = lines.index("const std::array<float, 4> WEIGHTS = {")
    assert lines[idx + 1] == "    0.10f, -0.25f, 0.00f,"
    assert lines[idx + 2] == "    1.00f"


def test_lang_code_to_enum() -> None:
    assert lang_code_to_enum("eng") == "Eng"
    assert lang_code_to_enum("zh_hant") == "Zh_hant"


def test_export_and_artifact_round_trip(tmp_path) -> None:
    model = _model()
    header_path = export_cpp_header(tmp_path / "out" / "weights.h", model)
    assert header_path.read_text(encoding="utf-8").startswith("// Auto-generated")

    config = TrainingConfig(dimension=2)
    artifact = build_artifact(model, config, {"eng": "English"}, metrics={"test": {"accuracy": 1.0}})
    path = save_artifact(artifact, tmp_path / "model.joblib")
    assert not (tmp_path / "model.joblib.tmp").exists()

    loaded = load_artifact(path)
    restored = model_from_artifact(loaded)
    assert restored.language_codes == ["deu", "eng"]
    assert np.array_equal(restored.weights, model.weights)
    assert np.array_equal(restored.intercepts, model.intercepts)
    assert loaded["config"]["dimension"] == 2
    assert loaded["language_names"] == {"eng": "English"}


def test_load_artifact_rejects_invalid(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_artifact(tmp_path / "missing.joblib")
    path = save_artifact({"language_codes": ["a"]}, tmp_path / "partial.joblib")
    with pytest.raises(ValueError):
        load_artifact(path)


def test_model_from_artifact_checks_dimension() -> None:
    artifact = build_artifact(_model(), TrainingConfig(dimension=3))
    with pytest.raises(ValueError):
        model_from_artifact(artifact)


def test_save_history_table(tmp_path) -> None:
    save_history_table(tmp_path, [{"epoch": 1, "avg_loss": 0.5}, {"epoch": 2, "avg_loss": 0.4}])
    assert (tmp_path / "epoch_history.csv").exists()
    assert (tmp_path / "epoch_history.json").exists()

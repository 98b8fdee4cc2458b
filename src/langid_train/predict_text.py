from __future__ import annotations

import argparse
from pathlib import Path
from typing import List, Tuple

from langid_train.export_weights import load_artifact, model_from_artifact
from langid_train.features.vectorizer import FeatureVectorizer
from langid_train.text_utils import format_predictions


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Identify the language of a text sample.")
    parser.add_argument("--checkpoint", type=Path, required=True, help="Path to langid_model.joblib")
    parser.add_argument("--text", type=str, default="", help="Inline text sample.")
    parser.add_argument("--text_file", type=Path, default=None, help="Optional text file path.")
    parser.add_argument("--top_k", type=int, default=5)
    return parser


def _load_text(args: argparse.Namespace) -> str:
    if args.text_file is not None:
        return args.text_file.read_text(encoding="utf-8")
    return args.text


def predict_text(
    checkpoint: Path,
    text: str,
    top_k: int = 5,
) -> List[Tuple[str, float]]:
    artifact = load_artifact(checkpoint)
    model = model_from_artifact(artifact)
    vectorizer = FeatureVectorizer(dimension=model.dimension)
    features = vectorizer.transform(text)
    if not features:
        raise ValueError("Input text produced no features.")
    return model.top_languages(features, top_k=top_k)


def main() -> None:
    args = _build_arg_parser().parse_args()
    text = _load_text(args)
    preds = predict_text(checkpoint=args.checkpoint, text=text, top_k=args.top_k)
    language_names = load_artifact(args.checkpoint).get("language_names") or {}
    for line in format_predictions(preds, language_names):
        print(line)


if __name__ == "__main__":
    main()

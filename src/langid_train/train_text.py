from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Dict, List, Optional

from langid_train.config import (
    ARTIFACT_FILENAME,
    DEFAULT_LANGUAGE_NAMES_JSON,
    DEFAULT_SENTENCES_CSV,
    HEADER_FILENAME,
    ExportConfig,
    TrainingConfig,
    validate_config,
)
from langid_train.data.load_sentences import (
    language_codes_from_examples,
    load_language_names,
    load_sentences_csv,
)
from langid_train.export_weights import build_artifact, export_cpp_header, save_artifact, save_history_table
from langid_train.text_utils import log_language_stats
from langid_train.trainer import LanguageDetectorTrainer, TrainingSummary

LOGGER = logging.getLogger(__name__)


def _build_arg_parser() -> argparse.ArgumentParser:
    defaults = TrainingConfig()
    parser = argparse.ArgumentParser(description="Train the hashed-feature language identification model.")
    parser.add_argument("--csv_path", type=Path, default=Path(DEFAULT_SENTENCES_CSV))
    parser.add_argument("--sep", type=str, default=",")
    parser.add_argument("--max_rows", type=int, default=0, help="0 means all rows.")
    parser.add_argument(
        "--language_names",
        type=Path,
        default=None,
        help=f"JSON object mapping language code -> display name (e.g. {DEFAULT_LANGUAGE_NAMES_JSON}).",
    )
    parser.add_argument("--output_dir", type=Path, default=Path("artifacts"))
    parser.add_argument("--export_header", type=Path, default=None, help=f"Default: <output_dir>/{HEADER_FILENAME}.")
    parser.add_argument("--learning_rate", type=float, default=defaults.learning_rate)
    parser.add_argument("--epochs", type=int, default=defaults.epochs)
    parser.add_argument("--regularization", type=float, default=defaults.regularization)
    parser.add_argument("--dimension", type=int, default=defaults.dimension)
    parser.add_argument("--train_test_split", type=float, default=defaults.train_test_split)
    parser.add_argument("--batch_size", type=int, default=defaults.batch_size)
    parser.add_argument("--early_stopping_patience", type=int, default=defaults.early_stopping_patience)
    parser.add_argument(
        "--num_worker_threads",
        type=int,
        default=defaults.num_worker_threads,
        help="0 means one thread per detected core.",
    )
    parser.add_argument(
        "--samples_per_language",
        type=int,
        default=defaults.samples_per_language,
        help="Resample every language to this many examples. 0 disables balancing.",
    )
    parser.add_argument("--eval_every", type=int, default=defaults.eval_every)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--export_decimals", type=int, default=ExportConfig().decimals)
    parser.add_argument("--export_values_per_line", type=int, default=ExportConfig().values_per_line)
    parser.add_argument("--progress", action=argparse.BooleanOptionalAction, default=True)
    return parser


def config_from_args(args: argparse.Namespace) -> TrainingConfig:
    config = TrainingConfig(
        learning_rate=float(args.learning_rate),
        epochs=int(args.epochs),
        regularization=float(args.regularization),
        dimension=int(args.dimension),
        train_test_split=float(args.train_test_split),
        batch_size=int(args.batch_size),
        early_stopping_patience=int(args.early_stopping_patience),
        num_worker_threads=int(args.num_worker_threads),
        samples_per_language=int(args.samples_per_language),
        eval_every=int(args.eval_every),
        seed=args.seed,
    )
    validate_config(config)
    return config


def run_training(
    csv_path: Path,
    output_dir: Path,
    config: TrainingConfig,
    language_names_path: Optional[Path] = None,
    export_header: Optional[Path] = None,
    export: ExportConfig = ExportConfig(),
    sep: str = ",",
    max_rows: int = 0,
    show_progress: bool = True,
) -> TrainingSummary:
    language_names: Dict[str, str] = {}
    if language_names_path is not None:
        language_names = load_language_names(language_names_path)
    examples = load_sentences_csv(csv_path, sep=sep, max_rows=max_rows if max_rows > 0 else None)
    if not examples:
        raise ValueError(f"No training examples found in {csv_path}.")

    language_codes = language_codes_from_examples(examples)
    LOGGER.info("Found %s unique languages", len(language_codes))
    log_language_stats(examples, language_names)

    trainer = LanguageDetectorTrainer(language_codes, config=config, language_names=language_names)
    summary = trainer.train(examples, show_progress=show_progress)

    output_dir.mkdir(parents=True, exist_ok=True)
    history_rows: List[Dict[str, object]] = [stats.as_row() for stats in summary.history]
    save_history_table(output_dir, history_rows)
    metrics: Dict[str, object] = {
        "state": summary.state.value,
        "epochs_run": summary.epochs_run,
        "best_loss": summary.best_loss,
        "train_size": summary.train_size,
        "test_size": summary.test_size,
    }
    if summary.test_metrics is not None:
        metrics["test"] = summary.test_metrics.as_dict()
    artifact = build_artifact(trainer.model, config, language_names, metrics=metrics, history=history_rows)
    artifact_path = save_artifact(artifact, output_dir / ARTIFACT_FILENAME)
    LOGGER.info("Saved model artifact -> %s", artifact_path)

    header_path = export_header if export_header is not None else output_dir / HEADER_FILENAME
    export_cpp_header(header_path, trainer.model, language_names, config, export)
    return summary


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
    args = _build_arg_parser().parse_args()
    config = config_from_args(args)
    export = ExportConfig(decimals=int(args.export_decimals), values_per_line=int(args.export_values_per_line))
    summary = run_training(
        csv_path=args.csv_path,
        output_dir=args.output_dir,
        config=config,
        language_names_path=args.language_names,
        export_header=args.export_header,
        export=export,
        sep=args.sep,
        max_rows=int(args.max_rows),
        show_progress=bool(args.progress),
    )
    LOGGER.info(
        "Finished: state=%s epochs=%s best_loss=%.4f",
        summary.state.value,
        summary.epochs_run,
        summary.best_loss,
    )


if __name__ == "__main__":
    main()

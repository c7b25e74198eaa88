#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Main entry point for Classroom Forest
Trains a random forest on a CSV file from the command line and prints its metrics.

[main -> Parses arguments, loads the CSV and runs a training session -> dependent functions are setup_logging, load_configuration, build_training_params, TrainingSession]
"""

import sys
import logging
import argparse
from typing import Any, Dict, List, Optional

import pandas as pd

from utils.logging_utils import setup_logging
from utils.config import load_configuration
from utils.serialization_utils import safe_json_dump


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Train a random forest on a CSV file")
    parser.add_argument("csv", help="Input CSV file")
    parser.add_argument("--target", required=True, help="Target column")
    parser.add_argument("--features", nargs="+", default=None,
                        help="Feature columns (default: every other column)")
    parser.add_argument("--n-estimators", type=int, default=None, help="Number of trees")
    parser.add_argument("--max-depth", type=int, default=None, help="Maximum tree depth")
    parser.add_argument("--max-features", default=None, help="'sqrt', 'log2', 'all' or an integer")
    parser.add_argument("--seed", type=int, default=None, help="Seed for bootstrap, feature sampling and the split")
    parser.add_argument("--metrics-out", default=None, help="Write the metrics as JSON to this file")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def build_training_params(args: argparse.Namespace, columns: List[str]) -> Dict[str, Any]:
    """Translate command-line arguments into TrainingConfig.from_dict input"""
    features = args.features or [column for column in columns if column != args.target]

    forest: Dict[str, Any] = {}
    if args.n_estimators is not None:
        forest['n_estimators'] = args.n_estimators
    if args.max_depth is not None:
        forest['max_depth'] = args.max_depth
    if args.max_features is not None:
        forest['max_features'] = args.max_features
    if args.seed is not None:
        forest['random_state'] = args.seed

    params: Dict[str, Any] = {
        'target_column': args.target,
        'selected_features': features,
        'model_type': 'random_forest',
        'random_forest': forest
    }
    if args.seed is not None:
        params['preprocessing'] = {'split_seed': args.seed}
    return params


def main(argv: Optional[List[str]] = None) -> int:
    """Main function to run a headless training session"""
    args = parse_args(argv)
    config = load_configuration()

    setup_logging(log_dir=config['application'].get('log_dir'),
                  log_level=logging.DEBUG if args.verbose else logging.INFO)
    logger = logging.getLogger(__name__)
    logger.info("Starting Classroom Forest")

    try:
        from PyQt5.QtCore import QCoreApplication
        from analytics.performance_metrics import MetricsCalculator
        from data.dataset import infer_column_meta
        from workflow.training_session import TrainingSession, SessionPhase

        app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
        app.setApplicationName(config['application']['name'])

        logger.info(f"Loading {args.csv}")
        df = pd.read_csv(args.csv)

        session = TrainingSession(config)
        session.set_dataset(df, infer_column_meta(df))
        session.progressUpdated.connect(
            lambda p: logger.info(f"Tree {p.completed}/{p.total} done (OOB {p.oob_score})")
        )
        for signal in (session.trainingComplete, session.trainingFailed, session.trainingCancelled):
            signal.connect(lambda *_: app.quit())

        if session.start(build_training_params(args, list(df.columns))):
            app.exec_()

        state = session.state
        for warning in state.warnings:
            print(f"WARNING: {warning}")

        if state.phase != SessionPhase.COMPLETED:
            print(f"ERROR: training ended in state '{state.phase.value}': {state.error}")
            return 1

        print(MetricsCalculator().generate_metrics_summary_text(state.metrics))

        if args.metrics_out:
            safe_json_dump(dict(state.metrics), args.metrics_out)
            logger.info(f"Metrics written to {args.metrics_out}")
        return 0

    except Exception as e:
        logger.error(f"Error running training: {str(e)}", exc_info=True)
        print(f"ERROR: {str(e)}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

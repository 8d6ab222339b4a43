#!/usr/bin/env python3
"""Command-line entry point for scoring target photos."""

import argparse
import json
import os
import sys
from typing import List, Optional

from arrow_scoring.config_manager import ConfigManager
from arrow_scoring.detection_pipeline import ScoringPipeline
from arrow_scoring.logging_config import get_logger, setup_logging
from arrow_scoring.services.error_handler import ScoringError
from arrow_scoring.services.model_manager import ModelManager


def parse_args(argv: List[str]) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Score arrow impacts in target photos.")
    parser.add_argument("images", nargs="*", help="Photo files to score")
    parser.add_argument("--config", default="config.json", help="Detection configuration file")
    parser.add_argument("--model", help="Model name or path (overrides the configuration)")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    parser.add_argument("--log-dir", help="Write rotating log files to this directory")
    parser.add_argument("--serve", action="store_true", help="Serve the JSON scoring API instead")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=5000)
    return parser.parse_args(argv)


def score_files(pipeline: ScoringPipeline, paths: List[str]) -> int:
    """Score each file and print one JSON document per photo."""
    failures = 0
    for path in paths:
        with open(path, 'rb') as f:
            image_bytes = f.read()

        result = pipeline.analyze(image_bytes, image_ref=os.path.basename(path))
        if not result.succeeded:
            failures += 1
        print(json.dumps(result.to_dict(), indent=2))

    return 1 if failures else 0


def main(argv: Optional[List[str]] = None) -> int:
    """Application entry point."""
    args = parse_args(sys.argv[1:] if argv is None else argv)

    setup_logging(args.log_level, args.log_dir)
    logger = get_logger("score_image")

    if not args.images and not args.serve:
        logger.error("Nothing to do: pass image files or --serve")
        return 2

    try:
        config = ConfigManager(args.config).load_config()
        model_path = None
        if args.model or config.model_path:
            model_path = ModelManager().resolve_model_path(args.model or config.model_path)
        pipeline = ScoringPipeline.from_config(config, model_path)
    except ScoringError as e:
        logger.error(f"Startup failed: {e}")
        return 1

    with pipeline:
        if args.serve:
            from arrow_scoring.web.app import ScoringWebApp
            ScoringWebApp(pipeline).run(host=args.host, port=args.port)
            return 0
        return score_files(pipeline, args.images)


if __name__ == "__main__":
    sys.exit(main())

"""
FDNL Model Runner

Calibrates sensor thresholds from training observations, evaluates the model
against held-out observations and computes the flowing drainage network
length (FDNL) over a time interval.

Usage:
    python scripts/run_model.py \\
        --reaches example_data/example_stream_reaches.csv \\
        --training example_data/example_stream_observations_training.csv \\
        --evaluation example_data/example_stream_observations_evaluation.csv \\
        --measurements example_data/example_sensors_measurements.csv \\
        --start "2021-09-01 00:00" --end "2021-09-03 00:00" --interval 1h \\
        --output-dir output --plot
"""

import argparse
import logging
import os
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from dotenv import load_dotenv

from common.config import ModelConfig, load_default_config
from ingest.validators import ValidationError
from pipeline.runner import run_model

# Configure stdout for UTF-8 on Windows
if sys.platform == 'win32':
    import codecs
    if sys.stdout.encoding != 'utf-8':
        sys.stdout = codecs.getwriter('utf-8')(sys.stdout.buffer, 'strict')
    if sys.stderr.encoding != 'utf-8':
        sys.stderr = codecs.getwriter('utf-8')(sys.stderr.buffer, 'strict')

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Run the FDNL model: calibrate, evaluate and compute FDNL",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument("--reaches", required=True, help="CSV of stream reaches (location_id, length)")
    parser.add_argument("--measurements", required=True, help="CSV of sensor measurements")
    parser.add_argument("--training", help="CSV of training observations")
    parser.add_argument("--evaluation", help="CSV of held-out observations")
    parser.add_argument("--thresholds", help="Reuse a thresholds CSV instead of calibrating")
    parser.add_argument("--start", help="Start of the FDNL interval, e.g. '2021-09-01 00:00'")
    parser.add_argument("--end", help="End of the FDNL interval, e.g. '2021-09-03 00:00'")
    parser.add_argument("--interval", help="FDNL step, e.g. '1h' (default from config)")
    parser.add_argument("--output-dir", default="output", help="Directory for output files")
    parser.add_argument("--config", help="Model config YAML (default: FDNL_CONFIG or config/model.yaml)")
    parser.add_argument("--balanced", action="store_true", help="Balance flow/no flow rows when evaluating")
    parser.add_argument("--seed", type=int, help="Random seed for balancing")
    parser.add_argument("--plot", action="store_true", help="Also write a PNG plot of the FDNL series")
    parser.add_argument("--debug", action="store_true", help="Log every vote and calibration candidate")

    args = parser.parse_args(argv)
    if not args.training and not args.thresholds:
        parser.error("one of --training or --thresholds is required")
    return args


def main(argv=None):
    load_dotenv()
    args = parse_args(argv)

    logging.basicConfig(
        level='DEBUG' if args.debug else os.getenv('LOG_LEVEL', 'INFO'),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    config = ModelConfig.from_yaml(Path(args.config)) if args.config else load_default_config()
    if args.balanced:
        config.evaluation.same_group_size = True
    if args.seed is not None:
        config.evaluation.seed = args.seed

    logger.info("=" * 60)
    logger.info("FDNL model run")
    logger.info("=" * 60)

    try:
        result = run_model(
            reaches_path=args.reaches,
            measurements_path=args.measurements,
            output_dir=args.output_dir,
            training_path=args.training,
            evaluation_path=args.evaluation,
            thresholds_path=args.thresholds,
            start=args.start,
            end=args.end,
            interval=args.interval,
            plot=args.plot,
            config=config
        )
    except (ValidationError, FileNotFoundError) as e:
        logger.error(f"❌ {e}")
        sys.exit(1)

    if result.evaluation is not None:
        print(result.evaluation)

    defined = [p for p in result.series if p.fdnl is not None]
    print(f"FDNL computed for {len(defined)}/{len(result.series)} timestamps")
    for name, path in result.outputs.items():
        print(f"  {name}: {path}")


if __name__ == "__main__":
    main()

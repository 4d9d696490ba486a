#!/usr/bin/env python3
"""
Replay an exported queue CSV through the estimator.

Feeds every logged sample into a fresh tracker at its original relative
time and prints the status report it would have shown.

Usage:
    python scripts/replay_queue_log.py queue_logs/queue_2024-05-01_20-14-03.csv
    python scripts/replay_queue_log.py log.csv --best-only --config config/queue_estimator.json
"""

import argparse
import logging
import sys
import time
from pathlib import Path

from queue_estimator import EstimatorConfig, QueueTracker, read_samples
from queue_estimator.buffer import SampleBuffer


def main():
    parser = argparse.ArgumentParser(description="Replay a queue CSV log through the estimator")
    parser.add_argument("csv", help="CSV file written by SampleExporter")
    parser.add_argument("--config", "-c", help="Estimator config JSON (default: built-in defaults)")
    parser.add_argument("--best-only", action="store_true", help="Show only the best estimate")
    parser.add_argument(
        "--every", type=int, default=1,
        help="Print every Nth report (default: 1)"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging of every fit")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    samples = read_samples(Path(args.csv))
    if not samples:
        print(f"No samples in {args.csv}")
        sys.exit(1)

    config = EstimatorConfig.load(Path(args.config)) if args.config else EstimatorConfig()
    if args.best_only:
        config.show_all_results = False

    # Logged samples are already throttled
    tracker = QueueTracker(config, buffer=SampleBuffer(min_interval_ms=0))
    tracker.add_rate_listener(
        lambda a: print(f"[RATE] {a.rate_per_minute:.2f}/min"
                        + (" (increased - unexpected)" if a.increased else ""))
    )

    start_ms = time.time() * 1000
    print(f"Replaying {len(samples)} samples from {args.csv}")
    print()

    for index, (relative_ms, position) in enumerate(samples):
        report = tracker.on_position(position, start_ms + relative_ms)
        if report is None or index % max(1, args.every):
            continue
        print(f"t={relative_ms / 60000:7.1f} min")
        for line in report.format_lines():
            print(f"  {line}")


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Run Platoon Script

Main entry point for single platoon runs and randomized campaigns.
"""

import argparse
import logging
import sys
from functools import partial
from pathlib import Path

# Add parent directory to path for imports
sys.path.append(str(Path(__file__).parent.parent))

from platoon_sim import (
    PlatoonRunner,
    PlatoonSimulation,
    PlatoonSimError,
    RandomScenarioGenerator,
    Sonificator,
    WarningSystem,
    kinematic_prediction,
    load_config
)
from platoon_sim.metrics import MetricsCollector


def setup_logging(level: str, log_file: str = None):
    """Configure logging for the command line"""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    if log_file:
        handler = logging.FileHandler(log_file)
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
        logging.getLogger().addHandler(handler)


def run_single(config, args, logger) -> int:
    simulation = PlatoonSimulation(config)
    if args.randomize:
        simulation.randomize_parameters()

    sinks = [Sonificator()] if args.sonify else []
    warnings = WarningSystem(config, sinks=sinks)
    predictor = None
    if args.predict:
        predictor = partial(kinematic_prediction, dt=config.simulation.time_step)

    runner = PlatoonRunner(simulation, warnings=warnings, predictor=predictor)
    result = runner.run(max_steps=args.steps)
    run_dir = runner.save_results(result, results_dir=args.output_dir, output_format=args.format)

    metrics = result.metrics
    logger.info("=" * 60)
    logger.info("RUN COMPLETE")
    logger.info("=" * 60)
    logger.info(f"Completion: {result.completion_reason or 'stopped'} at t={result.final_state.time:.1f}s")
    logger.info(f"Steps: {result.steps}")
    logger.info(f"Minimum gap: {metrics['min_gap']:.2f} m")
    logger.info(f"Warnings dispatched: {metrics['warnings_dispatched']} "
                f"(suppressed: {metrics['warnings_suppressed']})")
    logger.info(f"Results saved to: {run_dir}")

    return 0 if not metrics['collision'] else 1


def run_campaign(config, args, logger) -> int:
    generator = RandomScenarioGenerator(config, parallel_workers=args.parallel)
    results = generator.run_campaign(num_runs=args.campaign, max_steps=args.steps)

    output_dir = Path(args.output_dir or config.output.results_directory)
    output_dir.mkdir(parents=True, exist_ok=True)
    fmt = args.format or config.output.format

    metrics_path = output_dir / f"campaign_metrics.{fmt}"
    if fmt == 'parquet':
        results.to_parquet(metrics_path, compression='snappy')
    elif fmt == 'json':
        results.to_json(metrics_path, orient='records', indent=2)
    else:
        results.to_csv(metrics_path, index=False)
    generator.save_training_data(output_dir / f"training_data.{fmt}", format=fmt)

    collector = MetricsCollector()
    aggregated = collector.aggregate_metrics(results.to_dict('records'))
    if args.report:
        collector.metrics_history = results.to_dict('records')
        collector.export_markdown_report(output_dir / "campaign_report.md")

    logger.info("=" * 60)
    logger.info("CAMPAIGN COMPLETE")
    logger.info("=" * 60)
    logger.info(f"Total runs: {aggregated['total_runs']}")
    logger.info(f"Collision rate: {aggregated['collision_rate']:.2f}%")
    logger.info(f"Goal reached: {aggregated['goal_reached_rate']:.1f}%")
    logger.info(f"Safety score: {aggregated['safety_score']:.1f}/100")
    logger.info(f"Results saved to: {output_dir}")

    return 0 if aggregated['collision_rate'] < 1.0 else 1


def main():
    """Main execution"""
    parser = argparse.ArgumentParser(
        description="Platoon-Sim Truck Platoon Simulator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # One-mile run with default settings
  %(prog)s

  # Custom configuration, checking a kinematic prediction every step
  %(prog)s --config configs/default.yaml --predict

  # Randomized campaign of 100 runs on 4 processes
  %(prog)s --campaign 100 --parallel 4 --format parquet --report
        """
    )

    parser.add_argument(
        '--config', '-f',
        help='Path to configuration file (YAML/JSON)'
    )

    parser.add_argument(
        '--steps', '-n',
        type=int,
        default=None,
        help='Maximum number of steps per run (default: until finished)'
    )

    parser.add_argument(
        '--randomize',
        action='store_true',
        help='Randomize truck lengths and weights before a single run'
    )

    parser.add_argument(
        '--predict',
        action='store_true',
        help='Also check a kinematic prediction of the next state'
    )

    parser.add_argument(
        '--sonify',
        action='store_true',
        help='Synthesize warning tones for dispatched warnings'
    )

    parser.add_argument(
        '--campaign', '-m',
        type=int,
        default=0,
        help='Number of randomized scenarios (0 for a single run)'
    )

    parser.add_argument(
        '--parallel', '-j',
        type=int,
        default=1,
        help='Number of parallel workers for campaigns (-1 for auto)'
    )

    parser.add_argument(
        '--output-dir', '-o',
        default=None,
        help='Directory for results (default: from configuration)'
    )

    parser.add_argument(
        '--format',
        choices=['parquet', 'csv', 'json'],
        default=None,
        help='Output format for results'
    )

    parser.add_argument(
        '--report',
        action='store_true',
        help='Write a Markdown report after a campaign'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Print configuration without running'
    )

    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except PlatoonSimError as e:
        setup_logging('INFO')
        logging.getLogger(__name__).error(f"Invalid configuration: {e}")
        return 2

    setup_logging('DEBUG' if args.verbose else config.logging.log_level,
                  config.logging.log_file or None)
    logger = logging.getLogger(__name__)

    if args.dry_run:
        logger.info("Dry run - configuration:")
        for section, values in config.to_dict().items():
            logger.info(f"  {section}: {values}")
        logger.info(f"  config hash: {config.config_hash()}")
        return 0

    try:
        if args.campaign > 0:
            return run_campaign(config, args, logger)
        return run_single(config, args, logger)
    except PlatoonSimError as e:
        logger.error(f"Simulation failed: {e}", exc_info=True)
        return 1


if __name__ == '__main__':
    sys.exit(main())

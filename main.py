#!/usr/bin/env python3
"""
main.py - CLI for re-identification risk estimation.

Usage:
    python main.py --data records.csv --quasi-identifiers age gender zip \
        --sampling-fraction 0.1 --output-dir results/

Author: James Weatherhead
Institution: University of Texas Medical Branch (UTMB)
"""

import argparse
import logging
import sys
import time
from pathlib import Path
from datetime import datetime

import yaml
import pandas as pd

# Import local modules
from reidrisk.attribute_risk import risks_to_frame
from reidrisk.config import RiskConfig, load_config
from reidrisk.session import RiskSession
from reidrisk.table import DataFrameTable
from reidrisk.visualization import Visualizer


def setup_logging(log_level: str = "INFO", log_file: str = None) -> None:
    """Configure logging for the application."""
    handlers = [logging.StreamHandler(sys.stdout)]

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def build_config(args: argparse.Namespace) -> RiskConfig:
    """
    Merge the optional YAML file with command-line flags.

    Values from the file replace the defaults; flags given explicitly on the
    command line replace both.
    """
    config = load_config(args.config) if args.config else RiskConfig()
    values = config.to_dict()

    overrides = {
        'quasi_identifiers': args.quasi_identifiers,
        'sampling_fraction': args.sampling_fraction,
        'risk_threshold': args.threshold,
        'wildcard_token': args.wildcard,
        'attribute_model': args.attribute_model,
    }
    for key, value in overrides.items():
        if value is not None:
            values[key] = value
    if args.progress:
        values['show_progress'] = True

    return RiskConfig.from_dict(values)


def run_full_analysis(
    data_path: str,
    output_dir: str,
    config: RiskConfig,
    separator: str = ',',
    flag_suppressed: bool = False,
    with_attributes: bool = True,
    with_figures: bool = True
) -> dict:
    """
    Run the complete risk analysis pipeline.

    Args:
        data_path: Path to a delimited text file, one record per row
        output_dir: Path for output files
        config: Analysis settings
        separator: Field separator of the input file
        flag_suppressed: Treat rows whose quasi-identifiers are all the
                         wildcard token as suppressed
        with_attributes: Also analyse every quasi-identifier subset
        with_figures: Generate figures

    Returns:
        Dict with results summary
    """
    start_time = time.time()
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(__name__)

    # Step 1: Load data
    logger.info(f"Loading records from {data_path}...")
    data = pd.read_csv(data_path, sep=separator, dtype=str, keep_default_na=False)
    logger.info(f"Loaded {len(data)} records with columns {data.columns.tolist()}")

    if not config.quasi_identifiers:
        raise ValueError("No quasi-identifiers given (use --quasi-identifiers or a config file)")

    if flag_suppressed:
        table = DataFrameTable.with_suppressed_rows(
            data, config.quasi_identifiers, token=config.wildcard_token)
    else:
        table = DataFrameTable(data)

    session = RiskSession.from_config(table, config)

    # Step 2: Risk estimates
    logger.info("Estimating risks...")
    distribution = session.class_size_distribution()
    reidentification = session.sample_reidentification_risk()
    uniqueness = session.sample_uniqueness_risk()
    population = session.population_uniqueness_risk()
    summary = session.sample_risk_summary(config.risk_threshold)
    wildcard = session.wildcard_risk(config.risk_threshold, config.wildcard_token)
    curve = session.uniqueness_by_sampling_fraction()

    tables_dir = output_dir / "tables"
    tables_dir.mkdir(parents=True, exist_ok=True)
    distribution.to_csv(tables_dir / "class_size_distribution.csv", index=False)
    curve.to_csv(tables_dir / "uniqueness_by_sampling_fraction.csv", index=False)

    attribute_frame = None
    if with_attributes:
        logger.info("Analysing quasi-identifier subsets...")
        risks = session.attribute_risks(config.attribute_model)
        attribute_frame = risks_to_frame(risks)
        attribute_frame.to_csv(tables_dir / "attribute_risks.csv", index=False)

    # Step 3: Figures
    figure_paths = {}
    if with_figures:
        logger.info("Generating figures...")
        viz = Visualizer(output_dir=str(output_dir / "figures"))
        viz.plot_class_size_distribution(distribution)
        viz.plot_uniqueness_curve(curve, sampling_fraction=config.sampling_fraction)
        if attribute_frame is not None:
            viz.plot_attribute_risks(attribute_frame)
        figure_paths = viz.save_all_figures(formats=['pdf', 'png'])
        viz.close_all()

    # Step 4: Report
    elapsed_time = time.time() - start_time
    histogram = session.histogram()

    report = {
        'analysis_timestamp': datetime.now().isoformat(),
        'elapsed_time_seconds': elapsed_time,
        'data_path': str(data_path),
        'output_dir': str(output_dir),
        'config': config.to_dict(),
        'histogram': {
            'num_records': histogram.num_records,
            'num_classes': histogram.num_classes,
            'avg_class_size': histogram.avg_class_size,
        },
        'sample_reidentification_risk': reidentification.to_dict(),
        'sample_uniqueness_risk': uniqueness.to_dict(),
        'population_uniqueness_risk': population.to_dict(),
        'sample_risk_summary': summary.to_dict(),
        'wildcard_risk': wildcard.to_dict(),
        'figure_paths': figure_paths,
    }

    report_path = output_dir / "analysis_report.yaml"
    with open(report_path, 'w') as f:
        yaml.safe_dump(report, f, default_flow_style=False, sort_keys=False)

    logger.info(f"Analysis complete in {elapsed_time:.1f} seconds")
    logger.info(f"Results saved to: {output_dir}")

    # Print summary
    print("\n" + "=" * 60)
    print("RISK SUMMARY")
    print("=" * 60)
    print(f"Records:                  {histogram.num_records:,}")
    print(f"Equivalence classes:      {histogram.num_classes:,}")
    print(f"Quasi-identifiers:        {config.quasi_identifiers}")
    print(f"Sampling fraction:        {config.sampling_fraction}")
    print(f"\nSample-based:")
    print(f"    - Highest risk:         {reidentification.highest_risk:.2%}")
    print(f"    - Average risk:         {reidentification.average_risk:.2%}")
    print(f"    - Sample uniques:       {uniqueness.fraction_of_unique_tuples:.2%}")
    print(f"    - Records at risk (>{config.risk_threshold:.0%}): "
          f"{summary.prosecutor.fraction_of_records_at_risk:.2%}")
    print(f"\nPopulation-based ({population.dankar_model.value}):")
    print(f"    - Population uniques:   "
          f"{population.fraction_of_unique_tuples('dankar'):.2%}")
    print(f"\nOutput directory: {output_dir}")
    print("=" * 60)

    return report


def main():
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        description="Re-identification Risk Estimation for Tabular Microdata",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Sample-based and population-based risk of a full data set
  python main.py --data records.csv --quasi-identifiers age gender zip

  # A 5% sample, with a 10% risk threshold
  python main.py --data sample.csv --quasi-identifiers age gender zip \\
      --sampling-fraction 0.05 --threshold 0.1

  # Settings from a YAML file
  python main.py --data records.csv --config config.yaml

Author: James Weatherhead (jacweath@utmb.edu)
Institution: University of Texas Medical Branch (UTMB)
        """
    )

    parser.add_argument(
        '--data',
        type=str,
        required=True,
        help='Path to a delimited text file with one record per row'
    )

    parser.add_argument(
        '--separator',
        type=str,
        default=',',
        help='Field separator of the data file (default: ,)'
    )

    parser.add_argument(
        '--quasi-identifiers',
        type=str,
        nargs='+',
        help='Columns to treat as quasi-identifiers'
    )

    parser.add_argument(
        '--sampling-fraction',
        type=float,
        help='Sample size divided by population size (default: 1.0)'
    )

    parser.add_argument(
        '--threshold',
        type=float,
        help='Risk threshold in [0, 1] for records at risk (default: 0.2)'
    )

    parser.add_argument(
        '--wildcard',
        type=str,
        help='Token of suppressed values (default: *)'
    )

    parser.add_argument(
        '--flag-suppressed',
        action='store_true',
        help='Ignore rows whose quasi-identifiers are all suppressed'
    )

    parser.add_argument(
        '--attribute-model',
        type=str,
        choices=['pitman', 'zayatz', 'snb', 'dankar', 'dankar_without_snb'],
        help='Population model for attribute analysis (default: sample uniques)'
    )

    parser.add_argument(
        '--no-attributes',
        action='store_true',
        help='Skip the analysis of quasi-identifier subsets'
    )

    parser.add_argument(
        '--no-figures',
        action='store_true',
        help='Do not generate figures'
    )

    parser.add_argument(
        '--progress',
        action='store_true',
        help='Show a progress bar'
    )

    parser.add_argument(
        '--output-dir',
        type=str,
        default='results',
        help='Path for output files (default: results/)'
    )

    parser.add_argument(
        '--config',
        type=str,
        help='Path to YAML configuration file'
    )

    parser.add_argument(
        '--log-level',
        type=str,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default='INFO',
        help='Logging level (default: INFO)'
    )

    parser.add_argument(
        '--log-file',
        type=str,
        help='Path to log file (optional)'
    )

    args = parser.parse_args()

    # Setup logging
    log_file = args.log_file or str(Path(args.output_dir) / 'analysis.log')
    setup_logging(args.log_level, log_file)

    # Run analysis
    try:
        config = build_config(args)
        run_full_analysis(
            data_path=args.data,
            output_dir=args.output_dir,
            config=config,
            separator=args.separator,
            flag_suppressed=args.flag_suppressed,
            with_attributes=not args.no_attributes,
            with_figures=not args.no_figures
        )
        return 0
    except Exception as e:
        logging.error(f"Analysis failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""
Consistency checker for risk analysis results.

Verifies that the report written by main.py agrees with the class size table
it was written alongside.

Usage:
    python scripts/check_consistency.py [results_dir]
"""

import sys
from pathlib import Path

import pandas as pd
import yaml


def main(results_dir: str = "results") -> int:
    out = Path(results_dir)

    if not out.exists():
        print(f"ERROR: {out}/ directory not found. Run the analysis first.")
        return 1

    report_path = out / "analysis_report.yaml"
    if not report_path.exists():
        print(f"ERROR: {report_path} not found.")
        return 1

    report = yaml.safe_load(report_path.read_text())

    distribution_path = out / "tables" / "class_size_distribution.csv"
    if not distribution_path.exists():
        print(f"ERROR: {distribution_path} not found.")
        return 1

    distribution = pd.read_csv(distribution_path)

    print("=" * 60)
    print("CONSISTENCY CHECK")
    print("=" * 60)

    errors = []
    histogram = report['histogram']

    records = int((distribution['size'] * distribution['count']).sum())
    classes = int(distribution['count'].sum())
    print(f"\n  Report records: {histogram['num_records']}, table records: {records}")
    print(f"  Report classes: {histogram['num_classes']}, table classes: {classes}")
    if records != histogram['num_records']:
        errors.append(f"records: report ({histogram['num_records']}) != table ({records})")
    if classes != histogram['num_classes']:
        errors.append(f"classes: report ({histogram['num_classes']}) != table ({classes})")

    if not distribution['size'].is_monotonic_increasing or distribution['size'].duplicated().any():
        errors.append("class sizes are not strictly ascending")

    # Average risk is the number of classes per record
    average = report['sample_reidentification_risk']['average_risk']
    expected = classes / records if records else 0.0
    print(f"  Average risk: {average:.6f} (expected {expected:.6f})")
    if abs(average - expected) > 1e-9:
        errors.append(f"average risk {average} != classes / records {expected}")

    # Prosecutor success rate is the same quantity
    prosecutor = report['sample_risk_summary']['prosecutor']['success_rate']
    print(f"  Prosecutor success rate: {prosecutor:.6f}")
    if abs(prosecutor - average) > 1e-9:
        errors.append(f"prosecutor success rate {prosecutor} != average risk {average}")

    print("\n" + "=" * 60)

    if errors:
        print("ERRORS FOUND:")
        for e in errors:
            print(f"  - {e}")
        return 1
    else:
        print("All consistency checks passed.")
        return 0


if __name__ == "__main__":
    sys.exit(main(*sys.argv[1:2]))

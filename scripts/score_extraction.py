#!/usr/bin/env python3
"""Score a saved pipeline result against expected data for the same contract."""

import argparse
import logging
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from contract_engine.fields.benchmark import load_expected_extraction, score_extraction
from contract_engine.pipeline import PipelineResult

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("benchmark")


def main():
    parser = argparse.ArgumentParser(description="Score an extraction against expected data")
    parser.add_argument("result_json", help="Result written by run_pipeline.py --result-dir")
    parser.add_argument("expected_yaml", help="Expected extraction YAML (see benchmarks/)")
    args = parser.parse_args()

    result = PipelineResult.model_validate_json(Path(args.result_json).read_text())
    expected = load_expected_extraction(args.expected_yaml)

    if expected.contract_name != result.file_name:
        logger.warning(
            "Expected data is for '%s' but result is for '%s'",
            expected.contract_name,
            result.file_name,
        )

    report = score_extraction(expected, result.extraction)
    print(report.summary)
    for issue in report.issues:
        print(f"  [{issue.severity}] {issue.category}: {issue.message}")

    sys.exit(0 if report.passed else 1)


if __name__ == "__main__":
    main()

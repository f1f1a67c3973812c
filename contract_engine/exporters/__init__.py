"""Export convenience function."""

import logging
from pathlib import Path

from contract_engine.exporters.review_table import export_review_csv, export_review_excel
from contract_engine.pipeline import PipelineResult

logger = logging.getLogger(__name__)


def export_all(result: PipelineResult, output_dir: str) -> dict:
    """Run all exports and return dict of file paths created."""
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    stem = Path(result.file_name).stem or "contract"

    paths = {}

    csv_path = str(out / f"{stem}_fields.csv")
    export_review_csv(result, csv_path)
    paths["fields_csv"] = csv_path

    xlsx_path = str(out / f"{stem}_review.xlsx")
    export_review_excel(result, xlsx_path)
    paths["review_xlsx"] = xlsx_path

    logger.info("All exports written to %s", output_dir)
    return paths

#!/usr/bin/env python3
"""Run the contract extraction pipeline on one or more text files of a contract."""

import argparse
import json
import logging
import sys
import time
from pathlib import Path

# Ensure project root is on sys.path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from contract_engine.core.completion import OllamaCompletionClient
from contract_engine.core.config import PipelineConfig, load_pipeline_config
from contract_engine.exporters import export_all
from contract_engine.fields.conflicts import detect_field_conflicts
from contract_engine.pipeline import PipelineResult, run_pipeline

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("pipeline")

DEFAULT_CONFIG = PROJECT_ROOT / "configs" / "default_pipeline.yaml"


# ── Summary ──────────────────────────────────────────────────────────


def summarize(result: PipelineResult) -> dict:
    """Compact JSON-ready view of a pipeline result."""
    return {
        "file_name": result.file_name,
        "document_type": result.classification.document_type,
        "classification_confidence": result.classification.confidence,
        "fields": result.fields.metadata.model_dump(),
        "amendments": [
            {
                "number": a.amendment_number,
                "type": a.amendment_type,
                "date": a.amendment_date,
                "description": a.description,
                "confidence": a.confidence,
            }
            for a in result.amendments.amendments
        ],
        "conflicts": [c.conflict_description for c in result.conflicts],
        "validation_errors": [
            f"{', '.join(v.field_names)}: {v.result.message}"
            for v in result.validations
            if v.result.level == "error"
        ],
        "extraction_errors": result.extraction_errors,
        "overall_confidence": round(result.overall_confidence, 3),
        "requires_review": result.requires_review,
        "config_hash": result.config_hash[:12],
    }


# ── Cross-file Conflicts ─────────────────────────────────────────────


def report_cross_file_conflicts(results: list[PipelineResult]) -> None:
    """Log fields whose values disagree between files of the same contract."""
    groups = detect_field_conflicts(
        {r.file_name: r.fields.all_fields() for r in results}
    )
    if not groups:
        logger.info("No cross-file conflicts across %d files", len(results))
        return
    for group in groups:
        values = ", ".join(f"{s.file_name}={s.field.value!r}" for s in group.fields)
        logger.warning(
            "Conflict in %s (similarity %.2f): %s -> recommend %s",
            group.label,
            group.min_similarity,
            values,
            group.recommended.file_name,
        )


# ── CLI ──────────────────────────────────────────────────────────────


def main():
    parser = argparse.ArgumentParser(description="Extract and reconcile contract terms")
    parser.add_argument(
        "text_files",
        nargs="+",
        help="Extracted text of the contract; several files of one contract are cross-checked",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Pipeline config YAML (default: configs/default_pipeline.yaml if present)",
    )
    parser.add_argument("--model", default=None, help="Override the Ollama model name")
    parser.add_argument("--export-dir", default=None, help="Write CSV/Excel review exports here")
    parser.add_argument(
        "--result-dir", default=None, help="Write each full result as <name>_result.json here"
    )
    args = parser.parse_args()

    config_path = Path(args.config) if args.config else DEFAULT_CONFIG
    if config_path.exists():
        config = load_pipeline_config(config_path)
        logger.info("Loaded config %s (hash %s)", config_path, config.config_hash()[:12])
    elif args.config:
        logger.error("Config file not found: %s", config_path)
        sys.exit(1)
    else:
        config = PipelineConfig()

    if args.model:
        config = config.model_copy(
            update={"completion": config.completion.model_copy(update={"model": args.model})}
        )

    text_paths = [Path(p) for p in args.text_files]
    missing = [p for p in text_paths if not p.exists()]
    if missing:
        logger.error("Text file not found: %s", ", ".join(str(p) for p in missing))
        sys.exit(1)

    results = []
    for text_path in text_paths:
        t_start = time.time()
        # the async HTTP client is bound to the event loop run_pipeline creates
        client = OllamaCompletionClient(config.completion)
        result = run_pipeline(text_path.read_text(), text_path.name, client, config)
        logger.info("Pipeline finished for %s in %.1fs", text_path.name, time.time() - t_start)
        results.append(result)

        print(json.dumps(summarize(result), indent=2))

        if args.result_dir:
            out = Path(args.result_dir)
            out.mkdir(parents=True, exist_ok=True)
            result_path = out / f"{text_path.stem}_result.json"
            result_path.write_text(result.model_dump_json(indent=2))
            logger.info("Full result written to %s", result_path)

        if args.export_dir:
            paths = export_all(result, args.export_dir)
            for name, path in paths.items():
                logger.info("  %s: %s", name, path)

    if len(results) > 1:
        report_cross_file_conflicts(results)


if __name__ == "__main__":
    main()

"""Standalone job that runs one full sync synchronously."""

from __future__ import annotations

import argparse
import json
from pathlib import Path

from loguru import logger

from app.core.config import get_settings
from app.core.logging import configure_logging
from app.db import init_db

from .context import build_runtime
from .full_sync import FULL_SYNC_STAGES, FullSyncReport


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Sync contests, tracked profiles and the problem catalog",
    )
    parser.add_argument(
        "--stage",
        dest="stages",
        action="append",
        choices=FULL_SYNC_STAGES,
        help="Run only the given stage (can be provided multiple times)",
    )
    parser.add_argument(
        "--handle",
        dest="handles",
        action="append",
        help="Restrict the profile stage to specific handles (can be provided multiple times)",
    )
    parser.add_argument(
        "--summary-path",
        type=Path,
        default=None,
        help="Optional path where a JSON summary report will be written",
    )
    return parser.parse_args(argv)


def _write_summary(path: Path, report: FullSyncReport) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(report.to_dict(), default=str, indent=2, sort_keys=True) + "\n",
        encoding="utf-8",
    )
    logger.info("Sync summary written to {}", path)


def main(argv: list[str] | None = None) -> FullSyncReport:
    args = _parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level)
    init_db()

    runtime = build_runtime(settings)
    try:
        report = runtime.sync_service.run_full_sync(stages=args.stages, handles=args.handles)
    finally:
        runtime.close()

    if args.summary_path:
        _write_summary(args.summary_path, report)
    if not report.success:
        logger.warning(
            "Sync finished with failing stage(s): {}",
            ", ".join(stage.stage for stage in report.stages if not stage.success),
        )
    return report


if __name__ == "__main__":
    main()

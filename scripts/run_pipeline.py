"""
CLI entry point for the coaching insights pipeline.
"""

import asyncio
import argparse
from pathlib import Path

from src.core.pipeline import InsightPipeline, RunResult, create_pipeline
from src.shared.config import settings
from src.shared.exceptions import RunInProgressError
from src.shared.logging import get_logger, setup_logging

logger = get_logger(__name__)


def print_summary(result: RunResult):
    print("\n" + "=" * 50)
    print("Coaching Pipeline Summary")
    print("=" * 50)
    print(f"Run id: {result.run_id}")
    print(f"Status: {result.status.value}")
    print(f"Students in payload: {result.student_count}")
    print(f"Valid students: {result.valid_student_count}")
    print(f"Students processed: {result.processed_count}")
    print(f"Fallback insights: {result.fallback_count}")
    print(f"Validation errors: {len(result.validation_errors)}")
    print("=" * 50)


async def run_forever(pipeline: InsightPipeline, interval_minutes: int):
    """Run immediately, then on a fixed interval until interrupted."""
    while True:
        try:
            print_summary(await pipeline.run_once())
        except RunInProgressError as e:
            logger.warning(f"Skipping scheduled run: {e}")
        except Exception as e:
            # A failed run is already recorded; keep the schedule alive
            logger.error(f"Scheduled run failed: {e}")
        await asyncio.sleep(interval_minutes * 60)


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Student coaching insights pipeline")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single analysis cycle and exit"
    )
    parser.add_argument(
        "--interval-minutes",
        type=int,
        default=settings.pipeline.schedule_interval_minutes,
        help="Minutes between scheduled runs"
    )
    parser.add_argument(
        "--students",
        type=Path,
        default=None,
        help="Student JSON file (overrides PIPELINE_STUDENTS_JSON_PATH)"
    )

    args = parser.parse_args()

    # Setup logging
    setup_logging()

    if args.students:
        settings.pipeline.students_json_path = args.students

    pipeline = create_pipeline(settings)

    if args.once:
        print_summary(await pipeline.run_once())
        return

    interval = args.interval_minutes if args.interval_minutes > 0 else 30
    logger.info(f"Interval schedule configured: every {interval} minute(s)")
    await run_forever(pipeline, interval)


if __name__ == "__main__":
    asyncio.run(main())

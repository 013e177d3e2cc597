"""
Main entry point for the S3 sync engine.
"""
import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

from .exceptions import ConfigurationError
from .models.config import RunConfig
from .models.data_models import PhaseSummary
from .services.sync_service import SyncService


COMMANDS = ('sync', 'metadata', 'tags', 'clear')


def setup_logging(log_dir: str = "logs"):
    """Configure logging for the sync engine."""
    # Remove default logger
    logger.remove()

    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=os.getenv('S3SYNC_LOG_LEVEL', 'INFO')
    )

    Path(log_dir).mkdir(exist_ok=True)

    logger.add(
        f"{log_dir}/s3_sync.log",
        rotation="10 MB",
        retention="7 days",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        level="DEBUG"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='s3-sync',
        description='Sync local directories to S3 prefixes.',
        epilog=(
            'Environment: S3SYNC_CONFIG, S3SYNC_ENV, S3SYNC_ENDPOINT, S3SYNC_REGION, '
            'S3SYNC_PROFILE, S3SYNC_ACCESS_KEY, S3SYNC_SECRET_KEY, S3SYNC_STACK_NAME, S3SYNC_LOG_LEVEL'
        )
    )
    parser.add_argument('command', nargs='?', default='sync', choices=COMMANDS,
                        help='sync (default), metadata, tags or clear')
    parser.add_argument('-c', '--config', help='Configuration file (default: s3sync.yml)')
    parser.add_argument('-b', '--bucket', help='Restrict the command to one bucket name or output key')
    parser.add_argument('-e', '--env', help='Current environment, compared against OnlyForEnv')
    parser.add_argument('--endpoint', help='Alternate S3 endpoint, e.g. a local emulator')
    return parser


async def run_command(service: SyncService, command: str) -> List[PhaseSummary]:
    if command == 'sync':
        return await service.sync()
    if command == 'metadata':
        return [await service.sync_metadata()]
    if command == 'tags':
        return [await service.sync_bucket_tags()]
    return [await service.clear()]


def report(summaries: List[PhaseSummary]) -> bool:
    """Log one line per phase plus the failed targets; return overall success."""
    ok = True
    for summary in summaries:
        if summary.skipped:
            logger.info(f"{summary.phase}: skipped")
            continue
        status = 'succeeded' if summary.success else 'FAILED'
        logger.info(f"{summary.phase}: {status} ({len(summary.results)} targets)")
        for failed in summary.failed:
            logger.error(f"  {failed.target}: {failed.error}")
        logger.debug(json.dumps([r.to_dict() for r in summary.results], indent=2))
        ok = ok and summary.success
    return ok


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    args = build_parser().parse_args(argv)
    setup_logging()

    try:
        config = RunConfig.load(args.config)
        if args.bucket:
            config.bucket = args.bucket
        if args.env:
            config.env = args.env
        if args.endpoint:
            config.endpoint = args.endpoint

        logger.info(f"Running {args.command} command")
        service = SyncService(config)
        summaries = asyncio.run(run_command(service, args.command))
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Command failed: {str(e)}")
        sys.exit(1)

    if not report(summaries):
        sys.exit(1)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""Main entry point for quote funnel automation"""

import asyncio
import os
import sys
import argparse
import json
from loguru import logger
from dotenv import load_dotenv

LOG_FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"


def configure_logging(level: str = "INFO"):
    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)
    logger.add("logs/quote_funnel_{time}.log", rotation="1 day", retention="7 days", level="DEBUG", serialize=True)


# Configure logger
configure_logging()

# Load environment variables
load_dotenv()

from src.analytics.reporter import Reporter
from src.funnel.config import load_funnel_config
from src.funnel.service import submit_quote_request
from src.memory.store import SubmissionStore


def load_payload(path: str):
    """Read a request payload from a JSON file ('-' for stdin)"""
    if path == '-':
        return json.load(sys.stdin)
    with open(path, 'r') as f:
        return json.load(f)


async def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description='Insurance Quote Funnel Automation')
    parser.add_argument('--payload', type=str, metavar='FILE', help='JSON request payload (use - for stdin)')
    parser.add_argument('--config', type=str, default='config/config.yaml', help='Path to config.yaml')
    parser.add_argument('--view-runs', type=int, metavar='COUNT', help='View last N submissions')
    parser.add_argument('--view-stats', type=int, metavar='DAYS', help='View aggregated stats for last N days')
    parser.add_argument('--headless', action='store_true', help='Run browser in headless mode (no UI)')
    parser.add_argument('--debug', action='store_true', help='Enable debug mode (verbose logging, screenshot after every stage)')
    parser.add_argument('--single', action='store_true', help='Only use the first vehicle and driver')
    parser.add_argument('--first-step', action='store_true', help='Submit the Personal Info page only')
    args = parser.parse_args()

    # Configure environment based on flags
    if args.headless:
        os.environ['HEADLESS'] = 'true'
        logger.info("Running in HEADLESS mode (no browser UI)")

    if args.debug:
        os.environ['DEBUG'] = 'true'
        configure_logging("DEBUG")
        logger.debug("DEBUG mode enabled (verbose logging active)")

    try:
        config = load_funnel_config(args.config)
        store = SubmissionStore(config.history_file)

        if args.view_runs is not None:
            Reporter(store).display_recent_runs(limit=args.view_runs)
            return 0

        if args.view_stats is not None:
            Reporter(store).display_aggregated_stats(days=args.view_stats)
            return 0

        if not args.payload:
            parser.error("--payload is required unless viewing history")

        if args.single:
            config = config.model_copy(update={'supports_multiple': False})
            logger.info("Multi-entity entry disabled; only the first vehicle and driver will be used")

        payload = load_payload(args.payload)
        logger.info(f"Starting quote funnel run against {config.url}")
        output = await submit_quote_request(payload, config=config, store=store, first_step_only=args.first_step)

        print(json.dumps(output, indent=2, default=str))
        if output.get('success'):
            logger.success(f"Run finished: {output.get('message')}")
            return 0
        logger.error(f"Run failed: {output.get('message')}")
        return 1

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)

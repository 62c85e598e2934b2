#!/usr/bin/env python3
"""
Main entry point for the remote-write end-to-end test pipeline.

This script loads the configuration, sets up logging, creates the sender
and query client, and runs the generate, send, query and compare stages.
"""

import sys
import os
import random
import argparse

from prw_e2e.config import Config
from prw_e2e.exceptions import ConfigurationError
from prw_e2e.logging_config import setup_logging, get_logger
from prw_e2e.otlp_sender import OTLPSender
from prw_e2e.pipeline import STAGES, OutcomeStatus, RoundTripPipeline
from prw_e2e.query_client import QueryClient, SigV4Auth


EXIT_CODES = {
    OutcomeStatus.OK: 0,
    OutcomeStatus.FATAL: 1,
    OutcomeStatus.PARTIAL: 2,
}


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Remote-write end-to-end test pipeline',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                          # Run every stage with default config
  %(prog)s --config config.yaml    # Run with specific config file
  %(prog)s --stage query            # Only query the backend and write answers
        """
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        help='Path to configuration file (default: config.yaml if exists)'
    )

    parser.add_argument(
        '--debug', '-d',
        action='store_true',
        help='Enable debug logging'
    )

    parser.add_argument(
        '--validate-config',
        action='store_true',
        help='Validate configuration and exit'
    )

    parser.add_argument(
        '--stage',
        choices=('all',) + STAGES,
        action='append',
        help='Stage to run, may be repeated (default: all)'
    )

    return parser.parse_args(argv)


def validate_configuration(config: Config) -> bool:
    """
    Validate configuration and log results.

    Args:
        config: Configuration to validate

    Returns:
        True if configuration is valid
    """
    logger = get_logger(__name__)

    try:
        logger.info("Validating configuration...")
        config.validate()
        logger.info("Configuration validation successful")

        gen = config.generator
        logger.info(f"Generating {gen.item_count} metrics named {gen.base_metric_name}<i><suffix>, "
                    f"values in [0, {gen.value_bound}), bounds {list(gen.bounds)}")
        logger.info(f"Exporting to Collector at {config.collector.endpoint} "
                    f"(timeout {config.collector.request_timeout}s, "
                    f"delay {config.collector.inter_send_delay}s)")
        logger.info(f"Querying {config.query.query_url} "
                    f"(signing: {'on' if config.query.sign_requests else 'off'})")
        return True

    except ConfigurationError as e:
        logger.error(f"Configuration validation failed: {e}")
        return False


def build_pipeline(config: Config) -> RoundTripPipeline:
    """
    Create the pipeline with real collaborators.

    Args:
        config: Validated configuration

    Returns:
        RoundTripPipeline ready to run
    """
    collector = config.collector
    query = config.query

    def sender_factory() -> OTLPSender:
        return OTLPSender(
            endpoint=collector.endpoint,
            request_timeout=collector.request_timeout,
            inter_send_delay=collector.inter_send_delay
        )

    def query_client_factory() -> QueryClient:
        auth = SigV4Auth(query.aws_service, query.aws_region) if query.sign_requests else None
        return QueryClient(query.query_url, timeout=query.timeout, auth=auth)

    return RoundTripPipeline(
        config=config,
        rng=random.Random(config.generator.seed),
        sender_factory=sender_factory,
        query_client_factory=query_client_factory
    )


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)

    try:
        config = Config(config_file=args.config)
        if args.debug:
            config.logging.level = 'DEBUG'
        setup_logging(config.logging)
    except ConfigurationError as e:
        # Logging is not set up yet
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    logger = get_logger(__name__)
    logger.info("Starting remote-write end-to-end test pipeline")
    logger.info(f"Working directory: {os.getcwd()}")

    if not validate_configuration(config):
        logger.error("Configuration validation failed, exiting")
        return 1

    if args.validate_config:
        logger.info("Configuration validation completed successfully")
        return 0

    stages = STAGES if not args.stage or 'all' in args.stage else \
        tuple(stage for stage in STAGES if stage in args.stage)

    try:
        outcome = build_pipeline(config).run(stages)
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, stopping")
        return 1

    logger.info(f"Run finished with status {outcome.status.value}")
    return EXIT_CODES[outcome.status]


if __name__ == '__main__':
    sys.exit(main())

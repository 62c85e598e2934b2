"""
Pipeline module orchestrating the generate, send, query and compare stages.

This module provides the RoundTripPipeline class that writes synthetic
metrics to the input file, exports them to the Collector, reads them back
from the backend into the answer file and diffs the two files.

Failures follow an asymmetric policy: a file that cannot be created, a
decode error or any failed export is FATAL and stops the run, while a
failed query only makes the query stage PARTIAL.
"""

import difflib
import time
from dataclasses import dataclass, field
from enum import Enum
from itertools import zip_longest
from pathlib import Path
from typing import Callable, ContextManager, List, Optional, Sequence

from prw_e2e.config import Config
from prw_e2e.exceptions import (
    ConfigurationError, DecodeError, InvalidRecordShapeError, OutputFileError
)
from prw_e2e.logging_config import get_logger, log_operation
from prw_e2e.metric_decoder import decode_lines
from prw_e2e.metric_encoder import MetricGenerator, RandomSource, generate_lines
from prw_e2e.otlp_sender import OTLPSender
from prw_e2e.payload_builder import PayloadBuilder
from prw_e2e.query_client import QueryClient
from prw_e2e.response_normalizer import QueryKey, ResponseNormalizer


class OutcomeStatus(Enum):
    """Outcome of a stage or run, ordered from best to worst."""
    OK = "ok"
    PARTIAL = "partial"
    FATAL = "fatal"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {OutcomeStatus.OK: 0, OutcomeStatus.PARTIAL: 1, OutcomeStatus.FATAL: 2}

STAGES = ('generate', 'send', 'query', 'compare')


@dataclass
class StageOutcome:
    """
    Result of running a single pipeline stage.

    Attributes:
        stage: Stage name
        status: OK, PARTIAL or FATAL
        processed: Number of lines or records handled
        failed: Number of lines or records that failed
        errors: Error descriptions, truncated for logging
        duration: Stage duration in seconds
    """
    stage: str
    status: OutcomeStatus = OutcomeStatus.OK
    processed: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)
    duration: float = 0.0

    def fatal(self, error: Exception) -> 'StageOutcome':
        self.status = OutcomeStatus.FATAL
        self.failed += 1
        self.errors.append(str(error)[:200])
        return self


@dataclass
class RunOutcome:
    """Outcomes of every stage that ran, in order."""
    stages: List[StageOutcome] = field(default_factory=list)

    @property
    def status(self) -> OutcomeStatus:
        if not self.stages:
            return OutcomeStatus.OK
        return max((stage.status for stage in self.stages), key=lambda status: status.rank)

    def stage(self, name: str) -> Optional[StageOutcome]:
        return next((stage for stage in self.stages if stage.stage == name), None)


SenderFactory = Callable[[], ContextManager[OTLPSender]]
QueryClientFactory = Callable[[], ContextManager[QueryClient]]


class RoundTripPipeline:
    """
    Runs the round trip of synthetic metrics through the Collector and backend.

    All stages run sequentially; the sender and query client are created
    once per stage and reused for every record in it.
    """

    def __init__(self, config: Config, rng: RandomSource,
                 sender_factory: SenderFactory,
                 query_client_factory: QueryClientFactory,
                 builder: Optional[PayloadBuilder] = None,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Initialize the pipeline.

        Args:
            config: Configuration object
            rng: Random source for the generator
            sender_factory: Creates the sender used by the send stage
            query_client_factory: Creates the query client used by the query stage
            builder: Payload builder, one is created from the config otherwise
            sleep: Sleep function used for the Collector startup wait
        """
        self.config = config
        self.metric_format = config.metric_format()
        self.rng = rng
        self.sender_factory = sender_factory
        self.query_client_factory = query_client_factory
        self.builder = builder or PayloadBuilder(self.metric_format)
        self.sleep = sleep
        self.logger = get_logger(__name__)

    @property
    def input_path(self) -> Path:
        return Path(self.config.files.input_path)

    @property
    def output_path(self) -> Path:
        return Path(self.config.files.output_path)

    def run(self, stages: Sequence[str] = STAGES) -> RunOutcome:
        """
        Run the requested stages in order, stopping at the first FATAL one.

        Args:
            stages: Stage names to run

        Returns:
            RunOutcome with one StageOutcome per stage that ran
        """
        outcome = RunOutcome()

        for name in stages:
            if name not in STAGES:
                raise ValueError(f"Unknown stage {name!r}")

        if 'send' in stages and self.config.collector.startup_wait > 0:
            self.logger.info(f"Waiting {self.config.collector.startup_wait}s for the Collector to start")
            self.sleep(self.config.collector.startup_wait)

        for name in stages:
            stage_outcome = getattr(self, name)()
            outcome.stages.append(stage_outcome)
            self.logger.info(f"Stage {name} finished: {stage_outcome.status.value}, "
                             f"processed={stage_outcome.processed}, failed={stage_outcome.failed}, "
                             f"duration={stage_outcome.duration:.3f}s")
            if stage_outcome.status is OutcomeStatus.FATAL:
                self.logger.error(f"Stage {name} failed fatally, aborting run: "
                                  f"{'; '.join(stage_outcome.errors)}")
                break

        return outcome

    def generate(self) -> StageOutcome:
        """Write the synthetic metrics to the input file."""
        outcome = StageOutcome(stage='generate')
        gen_config = self.config.generator
        start_time = time.time()

        with log_operation(self.logger, "metric generation", level='INFO', stage='generate'):
            generator = MetricGenerator(
                self.metric_format, gen_config.base_metric_name, gen_config.value_bound, self.rng
            )
            try:
                self.input_path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.input_path, 'w', encoding='utf-8') as f:
                    for line in generate_lines(generator, gen_config.item_count):
                        f.write(line + "\n")
                        outcome.processed += 1
            except OSError as e:
                outcome.fatal(OutputFileError(
                    f"Cannot write input file {self.input_path}: {e}",
                    path=str(self.input_path), original_error=e))

        outcome.duration = time.time() - start_time
        return outcome

    def send(self) -> StageOutcome:
        """Decode the input file and export every record to the Collector."""
        outcome = StageOutcome(stage='send')
        start_time = time.time()

        with log_operation(self.logger, "metric export", level='INFO', stage='send'):
            try:
                with open(self.input_path, 'r', encoding='utf-8') as f, self.sender_factory() as sender:
                    for record in decode_lines(f, self.metric_format):
                        metric = self.builder.build(record)
                        result = sender.send(metric)
                        outcome.processed += 1
                        if not result.success:
                            return outcome.fatal(result.error)
            except OSError as e:
                outcome.fatal(OutputFileError(
                    f"Cannot read input file {self.input_path}: {e}",
                    path=str(self.input_path), original_error=e))
            except (ConfigurationError, DecodeError, InvalidRecordShapeError) as e:
                outcome.fatal(e)
            finally:
                outcome.duration = time.time() - start_time

        return outcome

    def query(self) -> StageOutcome:
        """Query every input metric and write the normalized answers."""
        outcome = StageOutcome(stage='query')
        start_time = time.time()

        with log_operation(self.logger, "metric query", level='INFO', stage='query'):
            try:
                self.output_path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.input_path, 'r', encoding='utf-8') as source, \
                        open(self.output_path, 'w', encoding='utf-8') as answers, \
                        self.query_client_factory() as client:
                    normalizer = ResponseNormalizer(self.metric_format, client.query)
                    for line in source:
                        if not line.strip():
                            continue
                        text = self._query_line(line, normalizer, outcome)
                        if text is not None:
                            answers.write(text + "\n")
            except OSError as e:
                outcome.fatal(OutputFileError(
                    f"Cannot open data files {self.input_path} / {self.output_path}: {e}",
                    path=str(self.output_path), original_error=e))
            except ConfigurationError as e:
                outcome.fatal(e)
            finally:
                outcome.duration = time.time() - start_time

        if outcome.status is OutcomeStatus.OK and outcome.failed:
            outcome.status = OutcomeStatus.PARTIAL
            self.logger.warning(f"{outcome.failed}/{outcome.processed} metrics could not be fully queried")

        return outcome

    def _query_line(self, line: str, normalizer: ResponseNormalizer,
                    outcome: StageOutcome) -> Optional[str]:
        try:
            key = QueryKey.from_line(line, self.metric_format)
        except DecodeError as e:
            if not e.fatal:
                self.logger.warning(f"Skipping line: {e}")
                return None
            # keep one answer line per input line
            self.logger.warning(f"Cannot read query key from line: {e}")
            outcome.processed += 1
            outcome.failed += 1
            outcome.errors.append(str(e)[:200])
            return ""

        normalized = normalizer.normalize(key)
        outcome.processed += 1
        if not normalized.complete:
            outcome.failed += 1
            outcome.errors.extend(normalized.warnings)
        return normalized.text

    def compare(self) -> StageOutcome:
        """Diff the input and answer files line by line."""
        outcome = StageOutcome(stage='compare')
        start_time = time.time()

        try:
            expected = self.input_path.read_text(encoding='utf-8').splitlines()
            actual = self.output_path.read_text(encoding='utf-8').splitlines()
        except OSError as e:
            outcome.duration = time.time() - start_time
            return outcome.fatal(OutputFileError(f"Cannot read data files for comparison: {e}",
                                                 original_error=e))

        for want, got in zip_longest(expected, actual):
            outcome.processed += 1
            if want != got:
                outcome.failed += 1

        if outcome.failed:
            outcome.status = OutcomeStatus.PARTIAL
            diff = difflib.unified_diff(
                expected, actual,
                fromfile=str(self.input_path), tofile=str(self.output_path), lineterm=""
            )
            self.logger.warning(f"{outcome.failed}/{outcome.processed} lines differ")
            self.logger.info("\n".join(diff))
        else:
            self.logger.info(f"All {outcome.processed} lines match")

        outcome.duration = time.time() - start_time
        return outcome

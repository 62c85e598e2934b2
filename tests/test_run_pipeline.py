"""
Tests for the command line entry point.
"""

import logging

import pytest
from unittest.mock import Mock, patch

import run_pipeline
from prw_e2e.pipeline import OutcomeStatus, RunOutcome, StageOutcome


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    """Write a small configuration into an empty working directory."""
    monkeypatch.chdir(tmp_path)
    for name in ("INPUT_PATH", "OUTPUT_PATH", "LOG_LEVEL", "COLLECTOR_ENDPOINT", "QUERY_URL",
                 "REQUEST_TIMEOUT", "INTER_SEND_DELAY", "AWS_SERVICE", "AWS_REGION"):
        monkeypatch.delenv(name, raising=False)

    path = tmp_path / "pipeline.yaml"
    path.write_text(
        "generator:\n"
        "  item_count: 3\n"
        "  seed: 1\n"
        "collector:\n"
        "  startup_wait: 0\n"
        "query:\n"
        "  sign_requests: false\n"
        "files:\n"
        f"  input_path: '{tmp_path / 'data.txt'}'\n"
        f"  output_path: '{tmp_path / 'ans.txt'}'\n"
        "logging:\n"
        "  level: WARNING\n"
    )
    yield path
    # setup_logging replaces handlers bound to captured streams
    logging.getLogger("prw_e2e").handlers.clear()


class TestMain:
    """Test cases for run_pipeline.main."""

    def test_validate_config_only(self, config_file):
        assert run_pipeline.main(['--config', str(config_file), '--validate-config']) == 0

    def test_invalid_config(self, config_file, tmp_path):
        bad = tmp_path / "bad.yaml"
        bad.write_text("collector:\n  endpoint: 'no-port'\n")

        assert run_pipeline.main(['--config', str(bad), '--validate-config']) == 1

    def test_missing_config_file(self, config_file):
        assert run_pipeline.main(['--config', 'missing.yaml']) == 1

    def test_generate_stage(self, config_file, tmp_path):
        assert run_pipeline.main(['--config', str(config_file), '--stage', 'generate']) == 0

        lines = (tmp_path / "data.txt").read_text().splitlines()
        assert len(lines) == 3
        assert not (tmp_path / "ans.txt").exists()

    @pytest.mark.parametrize("status,code", [
        (OutcomeStatus.OK, 0),
        (OutcomeStatus.PARTIAL, 2),
        (OutcomeStatus.FATAL, 1),
    ])
    def test_exit_code_follows_outcome(self, config_file, status, code):
        pipeline = Mock()
        pipeline.run.return_value = RunOutcome([StageOutcome('query', status)])

        with patch('run_pipeline.build_pipeline', return_value=pipeline):
            assert run_pipeline.main(['--config', str(config_file)]) == code

        pipeline.run.assert_called_once_with(run_pipeline.STAGES)

    def test_repeated_stage_flags_keep_pipeline_order(self, config_file):
        pipeline = Mock()
        pipeline.run.return_value = RunOutcome()

        with patch('run_pipeline.build_pipeline', return_value=pipeline):
            run_pipeline.main(['--config', str(config_file), '--stage', 'compare', '--stage', 'query'])

        pipeline.run.assert_called_once_with(('query', 'compare'))


class TestBuildPipeline:
    """Test cases for wiring the real collaborators."""

    def test_factories_create_clients(self, config_file):
        config = run_pipeline.Config(config_file=str(config_file))

        pipeline = run_pipeline.build_pipeline(config)

        with patch('run_pipeline.OTLPSender') as sender_class:
            pipeline.sender_factory()
        sender_class.assert_called_once_with(
            endpoint="localhost:55680", request_timeout=30.0, inter_send_delay=1.0)

        client = pipeline.query_client_factory()
        assert client.query_url == config.query.query_url
        assert client.session.auth is None
        client.close()

    def test_signing_enabled(self, config_file):
        config = run_pipeline.Config(config_file=str(config_file))
        config.query.sign_requests = True
        pipeline = run_pipeline.build_pipeline(config)

        with patch('run_pipeline.SigV4Auth') as auth_class:
            client = pipeline.query_client_factory()

        auth_class.assert_called_once_with("aps", "us-west-2")
        assert client.session.auth is auth_class.return_value
        client.close()

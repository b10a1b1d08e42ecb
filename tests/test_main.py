"""Tests for the command-line entry point."""

import json
from functools import partial
from unittest.mock import patch

import pytest

from app.config.exceptions import ConfigurationError
from app.config.models import AppConfig, DispatchConfig, EmailConfig, LoggingConfig
from app.desk import build_service_desk
from app.main import EXIT_FAILURE, EXIT_OK, EXIT_REJECTED, build_parser, load_runtime_config, main, run_command
from tests.helpers import RecordingSMTPClient, ScriptedSMSProvider, make_env_config, temp_database


@pytest.fixture
def smtp_client():
    return RecordingSMTPClient()


@pytest.fixture
def cli(tmp_path, smtp_client):
    """Run ``main`` against a temp database with recording transports; returns a callable."""
    env_config = make_env_config(database_url=f"sqlite:///{tmp_path / 'cli.db'}")
    app_config = AppConfig(
        email=EmailConfig(reverify_on_failure=False), dispatch=DispatchConfig(mode="inline")
    )
    desk_factory = partial(
        build_service_desk,
        smtp_client=smtp_client,
        sms_provider=ScriptedSMSProvider(),
        sleep=lambda seconds: None,
    )

    def run(*argv):
        with patch("app.main.load_runtime_config", return_value=(app_config, env_config)), patch(
            "app.main.configure_logging"
        ), patch("app.main.build_service_desk", desk_factory):
            return main(list(argv))

    return run


class TestParser:
    """Tests for argument parsing."""

    def test_transition_job_arguments(self):
        args = build_parser().parse_args(
            ["--actor-role", "technician", "--actor-id", "tech-1", "transition-job", "7", "completed",
             "--notes", "Replaced pump", "--work-performed", "Pump swap", "--not-fixed"]
        )

        assert args.command == "transition-job"
        assert args.job_id == 7
        assert args.technician_notes == "Replaced pump"
        assert args.not_fixed is True
        assert args.actor_role == "technician"

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_client_is_not_an_actor_role(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--actor-role", "client", "verify-email"])


class TestRunCommand:
    """Tests for run_command against an assembled desk."""

    @pytest.fixture
    def desk(self, tmp_path, smtp_client):
        with temp_database(tmp_path):
            desk = build_service_desk(
                AppConfig(email=EmailConfig(reverify_on_failure=False), dispatch=DispatchConfig(mode="inline")),
                make_env_config(),
                smtp_client=smtp_client,
                sms_provider=ScriptedSMSProvider(),
            )
            yield desk
            desk.close()

    def run(self, desk, *argv):
        return run_command(build_parser().parse_args(list(argv)), desk)

    def test_create_and_transition(self, desk):
        created = self.run(desk, "create-job", "--client-ref", "client-1", "--appliance-ref", "Fridge", "--warranty", "in_warranty")
        job_id = created["entity"]["id"]

        moved = self.run(desk, "transition-job", str(job_id), "assigned", "--technician-ref", "tech-1")

        assert created["entity"]["warranty_status"] == "in_warranty"
        assert moved["entity"]["status"] == "assigned"

    def test_not_fixed_flag(self, desk):
        job_id = self.run(desk, "create-job", "--client-ref", "c", "--appliance-ref", "a", "--technician-ref", "tech-1")["entity"]["id"]
        self.run(desk, "transition-job", str(job_id), "in_progress")

        done = self.run(
            desk, "transition-job", str(job_id), "completed", "--notes", "Temporary", "--work-performed", "Bypass", "--not-fixed"
        )

        assert done["entity"]["outcome"]["is_completely_fixed"] is False

    def test_part_order_commands(self, desk):
        job_id = self.run(desk, "create-job", "--client-ref", "c", "--appliance-ref", "a")["entity"]["id"]

        order = self.run(desk, "create-part-order", str(job_id), "--part-name", "Fan", "--quantity", "2", "--supplier", "Tehno", "--direct-order")
        cancelled = self.run(desk, "transition-part-order", str(order["entity"]["id"]), "cancelled", "--expected-status", "admin_ordered")

        assert order["entity"]["status"] == "admin_ordered"
        assert order["entity"]["quantity"] == 2
        assert cancelled["entity"]["status"] == "cancelled"

    def test_add_contact_and_history(self, desk):
        contact = self.run(desk, "add-contact", "client", "client-1", "Ana", "--email", "ana@example.com")
        job_id = self.run(desk, "create-job", "--client-ref", "client-1", "--appliance-ref", "a")["entity"]["id"]

        history = self.run(desk, "history", "job", str(job_id))

        assert contact["contact"] == {
            "role": "client",
            "ref_id": "client-1",
            "name": "Ana",
            "email": "ana@example.com",
            "phone": None,
        }
        assert history["entries"][0]["action"] == "created"
        assert any(entry["action"] == "notification" for entry in history["entries"])

    def test_verify_email(self, desk):
        result = self.run(desk, "verify-email")

        assert result == {"succeeded": True, "route": "configured", "tried": ["configured"], "error": None, "diagnostic": None}


class TestMain:
    """Tests for main() exit codes and output."""

    def test_success_prints_json(self, cli, capsys):
        code = cli("create-job", "--client-ref", "client-1", "--appliance-ref", "Washer")

        assert code == EXIT_OK
        output = json.loads(capsys.readouterr().out)
        assert output["entity"]["status"] == "pending"

    def test_rejected_request(self, cli, capsys):
        cli("create-job", "--client-ref", "client-1", "--appliance-ref", "Washer")
        capsys.readouterr()

        code = cli("transition-job", "1", "completed")

        assert code == EXIT_REJECTED
        error = json.loads(capsys.readouterr().err)
        assert error["error"] == "PreconditionError"

    def test_unknown_job(self, cli, capsys):
        code = cli("transition-job", "42", "assigned", "--technician-ref", "tech-1")

        assert code == EXIT_REJECTED
        assert json.loads(capsys.readouterr().err)["error"] == "NotFoundError"

    def test_technician_without_id_rejected(self, cli):
        assert cli("--actor-role", "technician", "create-job", "--client-ref", "c", "--appliance-ref", "a") == EXIT_REJECTED

    def test_verify_failure_exit_code(self, cli, smtp_client, capsys):
        smtp_client.failing_routes = {"configured", "relaxed_tls", "starttls_587", "implicit_tls_465"}

        code = cli("verify-email")

        assert code == EXIT_FAILURE
        assert json.loads(capsys.readouterr().out)["succeeded"] is False

    def test_watch_email_requires_interval(self, cli, capsys):
        assert cli("watch-email") == EXIT_FAILURE
        assert "verify_interval_minutes" in capsys.readouterr().err

    def test_configuration_error(self, capsys):
        with patch("app.main.load_runtime_config", side_effect=ConfigurationError("Missing required field: SMTP_HOST")):
            code = main(["verify-email"])

        assert code == EXIT_FAILURE
        assert "Configuration Error: Missing required field: SMTP_HOST" in capsys.readouterr().err


class TestLoadRuntimeConfig:
    """Tests for log level precedence and dispatch mode."""

    def load(self, env_level=None, config_level="INFO", override=None):
        app_config = AppConfig(logging=LoggingConfig(level=config_level))
        env_config = make_env_config(log_level=env_level)
        with patch("app.main.load_config", return_value=(app_config, env_config)):
            return load_runtime_config(None, override)

    def test_cli_override_wins(self):
        _, env_config = self.load(env_level="DEBUG", override="ERROR")

        assert env_config.log_level == "ERROR"

    def test_environment_beats_config_file(self):
        _, env_config = self.load(env_level="DEBUG", config_level="WARNING")

        assert env_config.log_level == "DEBUG"

    def test_config_file_level(self):
        _, env_config = self.load(config_level="WARNING")

        assert env_config.log_level == "WARNING"

    def test_dispatch_forced_inline(self):
        app_config, _ = self.load()

        assert app_config.dispatch.mode == "inline"

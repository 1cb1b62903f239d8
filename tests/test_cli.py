"""Unit tests for registry_cli/cli.py and registry_cli/shell.py"""

import io
from unittest.mock import MagicMock, patch

import pytest

from registry_cli import cli
from registry_cli.config_manager import ConfigManager
from registry_cli.error_utils import create_image_not_found_error
from registry_cli.models import PushResult, RemovalOutcome, TaggedImage
from registry_cli.shell import OutputSink, RegistryShell, Services, confirm_removal


@pytest.fixture
def config_manager(tmp_path):
    return ConfigManager(config_file=str(tmp_path / "config.yaml"), validate=False)


@pytest.fixture
def services(registry_client):
    removal = MagicMock()
    removal.remove_image.return_value = RemovalOutcome.UNTAGGED
    push = MagicMock()
    push.push_image.return_value = PushResult(repository="localhost:5000/app", tag="1.0", digest="sha256:NEW")
    return Services(
        registry_client=registry_client,
        image_executor=MagicMock(),
        git_client=MagicMock(),
        removal=removal,
        push=push,
    )


def _inputs(*answers):
    """Line reader that answers prompts in order and then reports end of input"""
    pending = list(answers)

    def read(prompt=""):
        if not pending:
            raise EOFError
        return pending.pop(0)

    return read


class TestOutputSink:
    """Tests for the notice sink"""

    def test_prints_non_blank_lines(self):
        out = io.StringIO()
        sink = OutputSink(out)

        sink.write("[Pushing app:1.0]")
        sink.write("  Step 1/2\n\n  Step 2/2\n")

        assert out.getvalue() == "[Pushing app:1.0]\n  Step 1/2\n  Step 2/2\n"


class TestConfirmRemoval:
    """Tests for the confirmation prompt"""

    def test_accepts_yes(self):
        assert confirm_removal("app:1.0", _inputs("maybe", "y")) is True

    def test_rejects_no(self):
        assert confirm_removal("app:1.0", _inputs("no")) is False


class TestRegistryShell:
    """Tests for the interactive menu"""

    def _shell(self, config_manager, services, *answers):
        return RegistryShell(
            config_manager,
            input_func=_inputs(*answers),
            edit_text=lambda text: text,
            services_factory=lambda *args, **kwargs: services,
        )

    @patch("registry_cli.shell.ImageExecutor.is_engine_available", return_value=True)
    def test_exit(self, _, config_manager, services):
        assert self._shell(config_manager, services, "6").run() == 0

    @patch("registry_cli.shell.ImageExecutor.is_engine_available", return_value=True)
    def test_end_of_input_exits(self, _, config_manager, services):
        assert self._shell(config_manager, services).run() == 0

    @patch("registry_cli.shell.ImageExecutor.is_engine_available", return_value=True)
    def test_remove_strips_registry_address(self, _, config_manager, services, capsys):
        shell = self._shell(config_manager, services, "Remove", "localhost:5000/svc:v1", "yes", "Exit")

        shell.run()

        services.removal.remove_image.assert_called_once_with(TaggedImage("svc", "v1"))
        assert "svc:v1 was untagged" in capsys.readouterr().out

    @patch("registry_cli.shell.ImageExecutor.is_engine_available", return_value=True)
    def test_errors_are_printed_and_loop_continues(self, _, config_manager, services, capsys):
        services.removal.remove_image.side_effect = create_image_not_found_error("svc:v9")
        config_manager.config["security"]["require_confirmation"] = False
        shell = self._shell(config_manager, services, "3", "svc:v9", "", "svc:v9", "Exit")

        assert shell.run() == 0

        out = capsys.readouterr().out
        assert "ImageNotFound" in out
        assert "Image svc:v9 is not on this registry" in out
        # An empty answer repeats the last command
        assert services.removal.remove_image.call_count == 2

    @patch("registry_cli.shell.ImageExecutor.is_engine_available", return_value=False)
    def test_push_disabled_without_engine(self, _, config_manager, services, capsys):
        shell = self._shell(config_manager, services, "Push", "Exit")

        shell.run()

        out = capsys.readouterr().out
        assert "Push [Disabled: Docker Not Available]" in out
        assert "DockerUnavailable" in out
        services.push.push_image.assert_not_called()

    @patch("registry_cli.shell.ImageExecutor.is_engine_available", return_value=True)
    def test_push_from_git(self, _, config_manager, services, capsys):
        shell = self._shell(config_manager, services, "Push", "3", "https://git.example.com/app.git", "app:1.0", "Exit")

        shell.run()

        services.push.push_image.assert_called_once_with(
            TaggedImage("app", "1.0"), git_url="https://git.example.com/app.git", dockerfile_path=None
        )
        assert "Digest: sha256:NEW" in capsys.readouterr().out

    @patch("registry_cli.shell.ImageExecutor.is_engine_available", return_value=True)
    def test_test_connection(self, _, config_manager, services, capsys):
        self._shell(config_manager, services, "Test Connection", "Exit").run()

        assert "Registry Version: registry/2.0" in capsys.readouterr().out

    @patch("registry_cli.shell.ImageExecutor.is_engine_available", return_value=True)
    def test_config_edit_is_saved(self, _, config_manager, services, tmp_path):
        shell = self._shell(config_manager, services, "Config", "Exit")
        shell.edit_text = lambda text: text.replace("http://localhost:5000", "http://registry.internal:5000")

        shell.run()

        assert config_manager.get_registry_address() == "http://registry.internal:5000"
        assert (tmp_path / "config.yaml").exists()


class TestCliMain:
    """Tests for the command line entry point"""

    @pytest.fixture(autouse=True)
    def use_config(self, config_manager):
        with patch("registry_cli.cli.get_config_manager", return_value=config_manager):
            yield

    def test_list(self, services, capsys):
        with patch("registry_cli.cli.build_services", return_value=services):
            assert cli.main(["list"]) == 0

        out = capsys.readouterr().out
        assert "team/app" in out

    def test_remove_with_force_skips_prompt(self, services):
        with patch("registry_cli.cli.build_services", return_value=services), \
                patch("registry_cli.cli.confirm_removal") as confirm:
            assert cli.main(["remove", "svc:v1", "--force"]) == 0

        confirm.assert_not_called()
        services.removal.remove_image.assert_called_once_with(TaggedImage("svc", "v1"))

    def test_remove_cancelled(self, services):
        with patch("registry_cli.cli.build_services", return_value=services), \
                patch("registry_cli.cli.confirm_removal", return_value=False):
            assert cli.main(["remove", "svc:v1"]) == 0

        services.removal.remove_image.assert_not_called()

    def test_actionable_error_exits_1(self, services, capsys):
        services.removal.remove_image.side_effect = create_image_not_found_error("svc:v9")

        with patch("registry_cli.cli.build_services", return_value=services):
            assert cli.main(["remove", "svc:v9", "--force"]) == 1

        assert "ImageNotFound" in capsys.readouterr().out

    def test_unexpected_error_is_logged_and_exits_1(self):
        failure = RuntimeError("socket closed")

        with patch("registry_cli.cli.build_services", side_effect=failure), \
                patch("registry_cli.cli.log_exception") as log_exception:
            assert cli.main(["list"]) == 1

        log_exception.assert_called_once_with(cli.logger, "Error in list", exc_info=failure)

    def test_invalid_reference_exits_1(self, services, capsys):
        with patch("registry_cli.cli.build_services", return_value=services):
            assert cli.main(["push", "no-tag"]) == 1

        assert "InvalidImageReference" in capsys.readouterr().out

    def test_push_with_dockerfile(self, services):
        with patch("registry_cli.cli.build_services", return_value=services):
            assert cli.main(["push", "app:1.0", "--dockerfile", "./app"]) == 0

        services.push.push_image.assert_called_once_with(TaggedImage("app", "1.0"), git_url=None,
                                                         dockerfile_path="./app")

    def test_config_set(self, tmp_path, capsys):
        config_file = str(tmp_path / "settings.yaml")

        assert cli.main(["--config", config_file, "config", "--set", "resolver.max_workers=3"]) == 0

        assert ConfigManager(config_file=config_file, validate=False).get_resolver_max_workers() == 3

    def test_config_set_repairs_scalar_section(self, tmp_path):
        config_file = tmp_path / "settings.yaml"
        config_file.write_text("registry: localhost:5000\n")

        assignment = "registry.address=http://registry.internal:5000"
        assert cli.main(["--config", str(config_file), "config", "--set", assignment]) == 0

        assert ConfigManager(config_file=str(config_file)).get_registry_address() == "http://registry.internal:5000"

    def test_config_set_requires_assignment(self, tmp_path):
        assert cli.main(["--config", str(tmp_path / "c.yaml"), "config", "--set", "verbose"]) == 1

    def test_test_connection_reports_health(self, capsys):
        with patch("registry_cli.cli.HealthChecker") as checker_class:
            checker_class.return_value.print_health_report.return_value = False
            assert cli.main(["test-connection"]) == 1

        checker_class.return_value.run_all_checks.assert_called_once_with(skip_optional=False)

"""Unit tests for the command line."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from pytest_mock import MockerFixture
from typer.testing import CliRunner

from converge.cli import EXIT_ABORTED, EXIT_BAD_CONFIG, EXIT_FAILED, create_application
from converge.core.errors import AttributeNotPresentError, ResourceGoneError, ShapeMismatchError
from tests.conftest import pod

runner = CliRunner()


@pytest.fixture
def k8s_resource(mocker: MockerFixture) -> MagicMock:
    """Patch the cluster out of the CLI and return the resource it will use."""
    mocker.patch("converge.cli.get_dynamic_client")
    resource: MagicMock = mocker.MagicMock(name="KubernetesResourceMock")
    resource.describe.return_value = "Pod default/web"
    resource.get.return_value = pod("Running")
    resource_cls = mocker.patch("converge.cli.KubernetesResource", return_value=resource)
    resource_cls.for_manifest.return_value = resource
    return resource


def write_config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "wait.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestWaitCommand:
    """Test `converge wait`."""

    @pytest.mark.unit
    def test_converged(self, tmp_path: Path, k8s_resource: MagicMock) -> None:
        config = write_config(
            tmp_path, "wait:\n  field:\n    - key: status.phase\n      value: Running\n"
        )
        result = runner.invoke(
            create_application(), ["wait", "Pod", "web", "--config", str(config)]
        )

        assert result.exit_code == 0, result.output
        assert "Pod default/web converged." in result.output
        k8s_resource.get.assert_called_with("web")

    @pytest.mark.unit
    def test_abort_exit_code(self, tmp_path: Path, k8s_resource: MagicMock) -> None:
        k8s_resource.get.return_value = pod("Failed")
        config = write_config(
            tmp_path, "error_on:\n  field:\n    - key: status.phase\n      value: Failed\n"
        )
        result = runner.invoke(
            create_application(), ["wait", "Pod", "web", "--config", str(config)]
        )

        assert result.exit_code == EXIT_ABORTED

    @pytest.mark.unit
    def test_timeout_exit_code(self, tmp_path: Path, k8s_resource: MagicMock) -> None:
        k8s_resource.get.return_value = pod("Pending")
        config = write_config(
            tmp_path, "wait:\n  field:\n    - key: status.phase\n      value: Running\n"
        )
        result = runner.invoke(
            create_application(),
            ["wait", "Pod", "web", "--config", str(config), "--timeout", "50ms"],
        )

        assert result.exit_code == EXIT_FAILED

    @pytest.mark.unit
    def test_bad_config_exit_code(self, tmp_path: Path, k8s_resource: MagicMock) -> None:
        config = write_config(
            tmp_path,
            "wait:\n  rollout: true\n  field:\n    - key: status.phase\n      value: Running\n",
        )
        result = runner.invoke(
            create_application(), ["wait", "Pod", "web", "--config", str(config)]
        )

        assert result.exit_code == EXIT_BAD_CONFIG
        k8s_resource.get.assert_not_called()


class TestApplyCommand:
    """Test `converge apply`."""

    @pytest.mark.unit
    def test_apply_and_wait(self, tmp_path: Path, k8s_resource: MagicMock) -> None:
        manifest = tmp_path / "pod.yaml"
        manifest.write_text(
            "apiVersion: v1\nkind: Pod\nmetadata:\n  name: web\nspec: {}\n", encoding="utf-8"
        )
        config = write_config(
            tmp_path, "wait:\n  field:\n    - key: status.phase\n      value: Running\n"
        )

        result = runner.invoke(
            create_application(), ["apply", "-f", str(manifest), "--config", str(config)]
        )

        assert result.exit_code == 0, result.output
        k8s_resource.apply.assert_called_once_with(
            {"apiVersion": "v1", "kind": "Pod", "metadata": {"name": "web"}, "spec": {}},
            "converge",
            False,
        )

    @pytest.mark.unit
    def test_manifest_without_name(self, tmp_path: Path, k8s_resource: MagicMock) -> None:
        manifest = tmp_path / "pod.yaml"
        manifest.write_text("apiVersion: v1\nkind: Pod\nmetadata: {}\n", encoding="utf-8")

        result = runner.invoke(create_application(), ["apply", "-f", str(manifest)])

        assert result.exit_code == EXIT_BAD_CONFIG
        k8s_resource.apply.assert_not_called()

    @pytest.mark.unit
    def test_delete_operation_is_rejected(self, tmp_path: Path, k8s_resource: MagicMock) -> None:
        manifest = tmp_path / "pod.yaml"
        manifest.write_text("apiVersion: v1\nkind: Pod\nmetadata:\n  name: web\n", encoding="utf-8")

        result = runner.invoke(
            create_application(), ["apply", "-f", str(manifest), "--operation", "delete"]
        )

        assert result.exit_code == EXIT_BAD_CONFIG
        assert "delete command" in result.output
        k8s_resource.apply.assert_not_called()


class TestDeleteCommand:
    """Test `converge delete`."""

    @pytest.fixture
    def manifest(self, tmp_path: Path) -> Path:
        path = tmp_path / "pod.yaml"
        path.write_text("apiVersion: v1\nkind: Pod\nmetadata:\n  name: web\n", encoding="utf-8")
        return path

    @pytest.mark.unit
    def test_delete_and_wait(self, manifest: Path, k8s_resource: MagicMock) -> None:
        k8s_resource.get.side_effect = ResourceGoneError("web")

        result = runner.invoke(create_application(), ["delete", "-f", str(manifest)])

        assert result.exit_code == 0, result.output
        assert "Pod default/web deleted." in result.output
        k8s_resource.delete.assert_called_once_with("web", "Background")

    @pytest.mark.unit
    def test_cascade_option(self, manifest: Path, k8s_resource: MagicMock) -> None:
        k8s_resource.get.side_effect = ResourceGoneError("web")

        result = runner.invoke(
            create_application(), ["delete", "-f", str(manifest), "--cascade", "Foreground"]
        )

        assert result.exit_code == 0, result.output
        k8s_resource.delete.assert_called_once_with("web", "Foreground")

    @pytest.mark.unit
    def test_timeout_exit_code(self, manifest: Path, k8s_resource: MagicMock) -> None:
        result = runner.invoke(
            create_application(), ["delete", "-f", str(manifest), "--timeout", "50ms"]
        )

        assert result.exit_code == EXIT_FAILED
        assert "deletion of web" in result.output


class TestExitCodes:
    """Test how failures inside a wait map to exit codes."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "error",
        [
            AttributeNotPresentError("status.phase"),
            ShapeMismatchError("status.replicas", "expected number, got 'abc'"),
        ],
    )
    def test_schema_errors_are_bad_config(
        self, mocker: MockerFixture, k8s_resource: MagicMock, error: Exception
    ) -> None:
        mocker.patch("converge.cli.wait_for", mocker.AsyncMock(side_effect=error))

        result = runner.invoke(create_application(), ["wait", "Pod", "web"])

        assert result.exit_code == EXIT_BAD_CONFIG
        assert "Invalid configuration" in result.output

import pytest

from kube_deploy_kit import registry as reg
from kube_deploy_kit.config import DeployConfig
from kube_deploy_kit.errors import BuildFailureError


def test_kind_uses_placeholder_registry(fake_commands) -> None:
    result = reg.resolve_registry(DeployConfig(target="kind", image_prefix="ignored.example.com"))

    assert result.prefix == reg.KIND_REGISTRY
    assert result.push is False
    assert fake_commands.calls == []


def test_gke_default_registry_from_project(fake_commands) -> None:
    result = reg.resolve_registry(DeployConfig(target="gke", gcp_project_id="test-project"))

    assert result.prefix == "gcr.io/test-project"
    assert result.project_id == "test-project"
    assert result.push is True
    assert fake_commands.calls == []


def test_gke_registry_override(fake_commands) -> None:
    cfg = DeployConfig(
        target="gke",
        gcp_project_id="test-project",
        image_prefix="us-docker.pkg.dev/test-project/apps/",
    )

    result = reg.resolve_registry(cfg)

    assert result.prefix == "us-docker.pkg.dev/test-project/apps"
    assert result.host == "us-docker.pkg.dev"


def test_gke_project_discovered_from_gcloud(fake_commands) -> None:
    fake_commands.on("gcloud", "config", "get-value", stdout="found-project\n")

    result = reg.resolve_registry(DeployConfig(target="gke"))

    assert result.project_id == "found-project"
    assert result.prefix == "gcr.io/found-project"


def test_unset_gcloud_project_falls_back_to_adc(fake_commands, monkeypatch: pytest.MonkeyPatch) -> None:
    fake_commands.on("gcloud", "config", "get-value", stdout="(unset)\n")
    monkeypatch.setattr(reg.google.auth, "default", lambda: (object(), "adc-project"))

    assert reg.discover_project_id() == "adc-project"


def test_artifact_registry_auth_is_host_scoped(fake_commands) -> None:
    cfg = DeployConfig(target="gke", gcp_project_id="p")
    registry = reg.RegistryConfig(prefix="asia-northeast3-docker.pkg.dev/p/apps", project_id="p", push=True)

    reg.configure_registry_auth(cfg, registry)

    assert fake_commands.commands == [
        ["gcloud", "auth", "configure-docker", "asia-northeast3-docker.pkg.dev", "--quiet"]
    ]


def test_global_registry_auth_uses_default_hosts(fake_commands) -> None:
    cfg = DeployConfig(target="gke", gcp_project_id="p")
    registry = reg.RegistryConfig(prefix="gcr.io/p", project_id="p", push=True)

    reg.configure_registry_auth(cfg, registry)

    assert fake_commands.commands == [["gcloud", "auth", "configure-docker", "--quiet"]]


def test_podman_login_uses_fresh_token_on_stdin(fake_commands) -> None:
    fake_commands.on("print-access-token", stdout="ya29.token\n")
    cfg = DeployConfig(target="gke", gcp_project_id="p", container_tool="podman")
    registry = reg.RegistryConfig(prefix="us-docker.pkg.dev/p/apps", project_id="p", push=True)

    reg.configure_registry_auth(cfg, registry)

    login_cmd, login_kwargs = fake_commands.find("podman", "login")[0]
    assert "https://us-docker.pkg.dev" in login_cmd
    assert "--password-stdin" in login_cmd
    # 토큰은 argv 가 아니라 stdin 으로만 전달된다.
    assert "ya29.token" not in login_cmd
    assert login_kwargs["input_text"] == "ya29.token"


def test_auth_failure_is_build_failure(fake_commands) -> None:
    fake_commands.on("configure-docker", fail=True)
    cfg = DeployConfig(target="gke", gcp_project_id="p")

    with pytest.raises(BuildFailureError):
        reg.configure_registry_auth(cfg, reg.RegistryConfig(prefix="gcr.io/p", project_id="p", push=True))


def test_kind_registry_needs_no_auth(fake_commands) -> None:
    reg.configure_registry_auth(DeployConfig(target="kind"), reg.RegistryConfig(prefix=reg.KIND_REGISTRY))

    assert fake_commands.calls == []

import logging
import os

import pytest

from kube_deploy_kit.config import DeployConfig
from kube_deploy_kit.errors import MissingContextError, NoClusterFoundError
from kube_deploy_kit.kube_context import kind_cluster_name, resolve_context


@pytest.mark.parametrize("target", ["gke", "kind"])
def test_explicit_context_is_returned_unchanged(target: str, fake_commands) -> None:
    cfg = DeployConfig(target=target, kube_context="my-ctx", kubeconfig="/tmp/kubeconfig")

    assert resolve_context(cfg) == "my-ctx"
    # 명시 context 가 있으면 어떤 외부 명령도 필요 없다.
    assert fake_commands.calls == []


def test_gke_uses_current_context_of_kubeconfig(fake_commands) -> None:
    fake_commands.on("current-context", stdout="gke_p_us-central1_c1\n")
    cfg = DeployConfig(target="gke", kubeconfig="/tmp/kubeconfig")

    assert resolve_context(cfg) == "gke_p_us-central1_c1"
    cmd, kwargs = fake_commands.calls[0]
    assert not any(a.startswith("--kubeconfig") for a in cmd)
    assert kwargs["env"]["KUBECONFIG"] == "/tmp/kubeconfig"


def test_gke_kubeconfig_path_list_is_passed_through_env(fake_commands) -> None:
    kubeconfig = os.pathsep.join(["/home/u/.kube/config", "/home/u/.kube/gke"])
    fake_commands.on("current-context", stdout="gke_p_us-central1_c1\n")
    cfg = DeployConfig(target="gke", kubeconfig=kubeconfig)

    assert resolve_context(cfg) == "gke_p_us-central1_c1"
    cmd, kwargs = fake_commands.calls[0]
    assert cmd == ["kubectl", "config", "current-context"]
    assert kwargs["env"]["KUBECONFIG"] == kubeconfig


def test_gke_kubeconfig_without_current_context_fails(fake_commands) -> None:
    fake_commands.on("current-context", stdout="")
    cfg = DeployConfig(target="gke", kubeconfig="/tmp/kubeconfig")

    with pytest.raises(MissingContextError):
        resolve_context(cfg)


def test_gke_without_context_lists_clusters_and_fails(fake_commands) -> None:
    listing = "NAME  LOCATION     STATUS\nprod  us-central1  RUNNING"
    fake_commands.on("gcloud", "clusters", "list", stdout=listing)
    cfg = DeployConfig(target="gke", gcp_project_id="test-project")

    with pytest.raises(MissingContextError) as excinfo:
        resolve_context(cfg)

    assert excinfo.value.kind == "MissingContext"
    assert excinfo.value.clusters == listing
    assert fake_commands.commands == [
        ["gcloud", "container", "clusters", "list", "--project=test-project"]
    ]


def test_gke_cluster_listing_failure_still_raises_missing_context(fake_commands) -> None:
    fake_commands.on("gcloud", fail=True)
    cfg = DeployConfig(target="gke")

    with pytest.raises(MissingContextError) as excinfo:
        resolve_context(cfg)

    assert "gcloud" in excinfo.value.clusters


def test_kind_prefers_default_cluster(fake_commands) -> None:
    fake_commands.on("kind", "get", "clusters", stdout="alpha\nkind\n")

    assert resolve_context(DeployConfig(target="kind")) == "kind-kind"


def test_kind_picks_first_cluster_when_default_missing(fake_commands) -> None:
    fake_commands.on("kind", "get", "clusters", stdout="beta\nalpha\n")

    assert resolve_context(DeployConfig(target="kind")) == "kind-beta"


def test_kind_without_clusters_fails(fake_commands) -> None:
    fake_commands.on("kind", "get", "clusters", stdout="")

    with pytest.raises(NoClusterFoundError):
        resolve_context(DeployConfig(target="kind"))


def test_kind_listing_failure_is_no_cluster_found(fake_commands) -> None:
    fake_commands.on("kind", fail=True)

    with pytest.raises(NoClusterFoundError):
        resolve_context(DeployConfig(target="kind"))


def test_kind_cluster_name_strips_prefix() -> None:
    assert kind_cluster_name("kind-dev") == "dev"
    assert kind_cluster_name("my-ctx") == "my-ctx"


def test_gke_cluster_listing_is_not_logged_as_error(fake_commands, caplog: pytest.LogCaptureFixture) -> None:
    listing = "NAME  LOCATION     STATUS\nprod  us-central1  RUNNING"
    fake_commands.on("gcloud", "clusters", "list", stdout=listing)

    with caplog.at_level(logging.DEBUG, logger="kube_deploy_kit"):
        with pytest.raises(MissingContextError):
            resolve_context(DeployConfig(target="gke"))

    # 목록 출력은 CLI 가 한 번만 한다.
    assert not [r for r in caplog.records if r.levelno >= logging.WARNING and "prod" in r.getMessage()]

"""
registry
--------

이미지 레지스트리 결정과 레지스트리 인증을 담당하는 모듈.

GKE 는 프로젝트 기반 기본 레지스트리(또는 IMAGE_PREFIX)로 푸시하고,
kind 는 클러스터 노드에 이미지를 직접 로드하므로 레지스트리가 자리표시자일 뿐이다.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import google.auth
from google.auth.exceptions import DefaultCredentialsError

from .config import DeployConfig
from .errors import BuildFailureError
from .logging_utils import get_logger
from .subprocess_utils import CommandError, run_command


logger = get_logger(__name__)


KIND_REGISTRY = "kind.local"
ARTIFACT_REGISTRY_SUFFIX = "-docker.pkg.dev"


@dataclass(frozen=True)
class RegistryConfig:
    prefix: str
    project_id: Optional[str] = None
    push: bool = False

    @property
    def host(self) -> str:
        return self.prefix.split("/", 1)[0]


def discover_project_id() -> str:
    """
    gcloud 설정의 기본 프로젝트를 읽고, 없으면 ADC(Application Default Credentials)를 확인한다.
    """
    try:
        project = run_command(
            ["gcloud", "config", "get-value", "project"], show_progress=False
        ).stdout.strip()
    except CommandError as e:
        logger.warning("gcloud 에서 프로젝트를 읽지 못했습니다: %s", e)
        project = ""

    # 설정이 없으면 gcloud 는 "(unset)" 을 출력한다.
    if project and project != "(unset)":
        return project

    try:
        _, project = google.auth.default()
    except DefaultCredentialsError as e:
        raise ValueError(
            "GCP 프로젝트를 결정할 수 없습니다. GCP_PROJECT_ID 를 설정하거나 "
            "`gcloud config set project <id>` 를 실행하세요."
        ) from e
    if not project:
        raise ValueError(
            "ADC 에 프로젝트 정보가 없습니다. GCP_PROJECT_ID 를 설정하세요."
        )
    return project


def resolve_registry(cfg: DeployConfig) -> RegistryConfig:
    if cfg.is_kind:
        return RegistryConfig(prefix=KIND_REGISTRY, push=False)

    project_id = cfg.gcp_project_id or discover_project_id()
    prefix = (cfg.image_prefix or f"gcr.io/{project_id}").rstrip("/")
    logger.info("이미지 레지스트리: %s (project=%s)", prefix, project_id)
    return RegistryConfig(prefix=prefix, project_id=project_id, push=True)


def is_artifact_registry_host(host: str) -> bool:
    # us-docker.pkg.dev, asia-northeast3-docker.pkg.dev 등
    return host.endswith(ARTIFACT_REGISTRY_SUFFIX)


def _docker_login(host: str) -> None:
    if is_artifact_registry_host(host):
        cmd = ["gcloud", "auth", "configure-docker", host, "--quiet"]
    else:
        # gcr.io 계열 기본 호스트는 인자 없이 등록된다.
        cmd = ["gcloud", "auth", "configure-docker", "--quiet"]
    run_command(cmd)


def _podman_login(host: str) -> None:
    # podman 은 docker credential helper 를 쓰지 않으므로 매번 새 토큰으로 로그인한다.
    token = run_command(
        ["gcloud", "auth", "print-access-token"], show_progress=False
    ).stdout.strip()
    if not token:
        raise CommandError("gcloud 에서 access token 을 받지 못했습니다.", cmd=["gcloud", "auth", "print-access-token"])
    run_command(
        [
            "podman",
            "login",
            "-u",
            "oauth2accesstoken",
            "--password-stdin",
            f"https://{host}",
        ],
        input_text=token,
    )


def configure_registry_auth(cfg: DeployConfig, registry: RegistryConfig) -> None:
    """
    푸시 전에 레지스트리 호스트에 대한 인증을 준비한다. kind 는 할 일이 없다.
    """
    if not registry.push:
        logger.debug("푸시하지 않는 레지스트리이므로 인증을 건너뜁니다: %s", registry.prefix)
        return

    host = registry.host
    logger.info("레지스트리 인증 설정: host=%s tool=%s", host, cfg.container_tool)
    try:
        if cfg.container_tool == "podman":
            _podman_login(host)
        else:
            _docker_login(host)
    except CommandError as e:
        raise BuildFailureError(f"레지스트리 인증에 실패했습니다 ({host}): {e}") from e

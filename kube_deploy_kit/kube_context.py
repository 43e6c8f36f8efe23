"""
kube_context
------------

배포 대상 kube context 를 결정하는 모듈.

- 명시적으로 설정된 KUBE_CONTEXT 는 대상과 무관하게 그대로 사용한다.
- GKE: KUBECONFIG 가 있으면 그 파일의 current-context 를 쓰고,
  둘 다 없으면 클러스터 목록을 보여준 뒤 실패한다. 추측하지 않는다.
- kind: 관례상 기본 클러스터(kind)를 쓰고, 없으면 로컬 클러스터 중 첫 번째를 고른다.
"""

from __future__ import annotations

import os
from typing import Dict, List, Optional

from .config import DeployConfig
from .errors import MissingContextError, NoClusterFoundError
from .logging_utils import get_logger
from .subprocess_utils import CommandError, run_command


logger = get_logger(__name__)


DEFAULT_KIND_CLUSTER = "kind"
KIND_CONTEXT_PREFIX = "kind-"


def kind_context_name(cluster: str) -> str:
    return f"{KIND_CONTEXT_PREFIX}{cluster}"


def kind_cluster_name(context: str) -> str:
    """kind-<name> 형태의 context 에서 kind 클러스터 이름을 꺼낸다."""
    if context.startswith(KIND_CONTEXT_PREFIX):
        return context[len(KIND_CONTEXT_PREFIX):]
    return context


def kubeconfig_env(kubeconfig: Optional[str]) -> Optional[Dict[str, str]]:
    """
    KUBECONFIG 는 여러 파일을 os.pathsep 으로 이은 목록일 수 있어 --kubeconfig 플래그(단일 파일)로
    넘기지 않고 자식 프로세스 환경변수로 전달한다.
    """
    if not kubeconfig:
        return None
    return {**os.environ, "KUBECONFIG": kubeconfig}


def list_kind_clusters() -> List[str]:
    try:
        result = run_command(["kind", "get", "clusters"], show_progress=False)
    except CommandError as e:
        raise NoClusterFoundError(f"kind 클러스터 목록을 가져오지 못했습니다: {e}") from e
    # 클러스터가 없으면 kind 는 stderr 로 안내만 하고 stdout 은 비어 있다.
    return [line.strip() for line in result.stdout.splitlines() if line.strip()]


def list_gke_clusters(project_id: str | None) -> str:
    """
    진단용 GKE 클러스터 목록(읽기 전용). 실패해도 예외 대신 안내 문구를 돌려준다.
    """
    cmd = ["gcloud", "container", "clusters", "list"]
    if project_id:
        cmd.append(f"--project={project_id}")
    try:
        return run_command(cmd, show_progress=False).stdout.strip()
    except CommandError as e:
        logger.warning("GKE 클러스터 목록 조회 실패: %s", e)
        return "(클러스터 목록을 가져오지 못했습니다. gcloud 로그인/프로젝트 설정을 확인하세요)"


def _current_context(kubeconfig: str) -> str:
    cmd = ["kubectl", "config", "current-context"]
    try:
        context = run_command(cmd, env=kubeconfig_env(kubeconfig), show_progress=False).stdout.strip()
    except CommandError as e:
        raise MissingContextError(
            f"KUBECONFIG({kubeconfig}) 에서 current-context 를 읽지 못했습니다: {e}"
        ) from e
    if not context:
        raise MissingContextError(f"KUBECONFIG({kubeconfig}) 에 current-context 가 없습니다.")
    return context


def _resolve_gke(cfg: DeployConfig) -> str:
    if cfg.kubeconfig:
        context = _current_context(cfg.kubeconfig)
        logger.info("KUBECONFIG 의 current-context 를 사용합니다: %s", context)
        return context

    clusters = list_gke_clusters(cfg.gcp_project_id)
    logger.debug("GKE 클러스터 목록:\n%s", clusters or "(없음)")
    raise MissingContextError(
        "GKE 배포에는 KUBE_CONTEXT 또는 KUBECONFIG 가 필요합니다. "
        "예: gcloud container clusters get-credentials <cluster> --location <location> 후 "
        "KUBE_CONTEXT=gke_<project>_<location>_<cluster>",
        clusters=clusters,
    )


def _resolve_kind(cfg: DeployConfig) -> str:
    clusters = list_kind_clusters()
    if DEFAULT_KIND_CLUSTER in clusters:
        return kind_context_name(DEFAULT_KIND_CLUSTER)
    if not clusters:
        raise NoClusterFoundError(
            "로컬 kind 클러스터가 없습니다. `kind create cluster` 로 먼저 생성하세요."
        )
    logger.info(
        "기본 kind 클러스터(%s)가 없어 첫 번째 클러스터를 사용합니다: %s",
        DEFAULT_KIND_CLUSTER,
        clusters[0],
    )
    return kind_context_name(clusters[0])


def resolve_context(cfg: DeployConfig) -> str:
    if cfg.kube_context:
        logger.info("명시된 kube context 를 사용합니다: %s", cfg.kube_context)
        return cfg.kube_context

    if cfg.is_gke:
        return _resolve_gke(cfg)
    context = _resolve_kind(cfg)
    logger.info("kind context 자동 선택: %s", context)
    return context

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional, List

from dotenv import load_dotenv


ENV_FILES_DEFAULT_ORDER = [".env", ".env.local"]

TARGET_GKE = "gke"
TARGET_KIND = "kind"
TARGETS = (TARGET_GKE, TARGET_KIND)

CONTAINER_TOOLS = ("docker", "podman")

DEFAULT_NAMESPACE = "kubectl-ai"
DEFAULT_IMAGE_NAME = "kubectl-ai"


def load_env_files(base_dir: str = ".",
                   files: Optional[List[str]] = None) -> None:
    """
    주어진 디렉토리에서 .env 계열 파일을 순서대로 로드한다.
    후순위 파일이 같은 키를 덮어쓴다.
    """
    order = files or ENV_FILES_DEFAULT_ORDER
    for name in order:
        path = os.path.join(base_dir, name)
        if os.path.exists(path):
            load_dotenv(path, override=True)


def _get_str(name: str) -> Optional[str]:
    # 빈 문자열은 미설정으로 취급한다.
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return raw.strip()


@dataclass(frozen=True)
class DeployConfig:
    target: str

    namespace: str = DEFAULT_NAMESPACE
    kube_context: Optional[str] = None
    kubeconfig: Optional[str] = None

    # GKE 전용
    gcp_project_id: Optional[str] = None
    image_prefix: Optional[str] = None

    container_tool: str = "docker"
    image_name: str = DEFAULT_IMAGE_NAME
    build_context_dir: str = "."
    dockerfile: Optional[str] = None

    # kind 전용 (클러스터 내 Secret 으로 들어간다)
    gemini_api_key: Optional[str] = None

    manifest_template: Optional[str] = None

    @property
    def is_gke(self) -> bool:
        return self.target == TARGET_GKE

    @property
    def is_kind(self) -> bool:
        return self.target == TARGET_KIND

    @classmethod
    def from_env(cls, target: str) -> "DeployConfig":
        """
        환경변수에서 설정을 한 번에 읽어 검증한다.
        잘못된 값은 부작용이 있는 단계가 시작되기 전에 ValueError 로 모두 보고한다.
        """
        cfg = cls(
            target=(target or "").strip().lower(),
            namespace=_get_str("NAMESPACE") or DEFAULT_NAMESPACE,
            kube_context=_get_str("KUBE_CONTEXT"),
            kubeconfig=_get_str("KUBECONFIG"),
            gcp_project_id=_get_str("GCP_PROJECT_ID"),
            image_prefix=_get_str("IMAGE_PREFIX"),
            container_tool=(_get_str("CONTAINER_TOOL") or "docker").lower(),
            image_name=_get_str("IMAGE_NAME") or DEFAULT_IMAGE_NAME,
            build_context_dir=_get_str("BUILD_CONTEXT_DIR") or ".",
            dockerfile=_get_str("DOCKERFILE"),
            gemini_api_key=_get_str("GEMINI_API_KEY"),
            manifest_template=_get_str("MANIFEST_TEMPLATE"),
        )
        cfg.validate()
        return cfg

    def validate(self) -> None:
        problems: List[str] = []
        if self.target not in TARGETS:
            problems.append(
                f"target={self.target!r} (허용: {', '.join(TARGETS)})"
            )
        if self.container_tool not in CONTAINER_TOOLS:
            problems.append(
                f"CONTAINER_TOOL={self.container_tool!r} (허용: {', '.join(CONTAINER_TOOLS)})"
            )
        if not self.namespace:
            problems.append("NAMESPACE 가 비어 있습니다")
        if self.image_prefix and self.image_prefix.rstrip("/") == "":
            problems.append(f"IMAGE_PREFIX={self.image_prefix!r}")
        if self.manifest_template and not os.path.exists(self.manifest_template):
            problems.append(f"MANIFEST_TEMPLATE 파일이 없습니다: {self.manifest_template}")

        if problems:
            raise ValueError("잘못된 설정값이 있습니다: " + "; ".join(problems))

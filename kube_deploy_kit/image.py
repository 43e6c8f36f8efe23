"""
image
-----

이미지 참조(ImageReference) 생성과 빌드/푸시(또는 kind 로드)를 담당하는 모듈.
빌드 단계와 매니페스트 렌더링은 같은 ImageReference 인스턴스를 사용해야 한다.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from .config import DeployConfig
from .errors import BuildFailureError
from .kube_context import kind_cluster_name
from .logging_utils import get_logger
from .registry import RegistryConfig
from .subprocess_utils import CommandError, run_command


logger = get_logger(__name__)


TAG_FORMAT = "%Y%m%d%H%M%S"


@dataclass(frozen=True)
class ImageReference:
    registry: str
    name: str
    tag: str

    def __str__(self) -> str:
        return f"{self.registry}/{self.name}:{self.tag}"


def make_tag(now: Optional[datetime] = None) -> str:
    return (now or datetime.now(timezone.utc)).strftime(TAG_FORMAT)


def make_image_reference(cfg: DeployConfig, registry: RegistryConfig,
                         now: Optional[datetime] = None) -> ImageReference:
    return ImageReference(registry=registry.prefix, name=cfg.image_name, tag=make_tag(now))


def _build_cmd(cfg: DeployConfig, image: str) -> list[str]:
    cmd = [cfg.container_tool, "build", "-t", image]
    if cfg.dockerfile:
        cmd += ["-f", cfg.dockerfile]
    cmd.append(cfg.build_context_dir)
    return cmd


def _load_into_kind(cfg: DeployConfig, image: str, context: str) -> None:
    cluster = kind_cluster_name(context)
    if cfg.container_tool == "docker":
        run_command(
            ["kind", "load", "docker-image", image, "--name", cluster],
            stream_output=True,
            timeout=None,
            spinner_message=f"kind 로 이미지 로드 중: {cluster}",
        )
        return

    # kind 는 podman 이미지 저장소를 직접 읽지 못하므로 아카이브로 넘긴다.
    with tempfile.TemporaryDirectory(prefix="kube-deploy-") as tmp:
        archive = os.path.join(tmp, "image.tar")
        run_command(["podman", "save", "-o", archive, image], timeout=None)
        run_command(
            ["kind", "load", "image-archive", archive, "--name", cluster],
            stream_output=True,
            timeout=None,
            spinner_message=f"kind 로 이미지 로드 중: {cluster}",
        )


def build_and_publish(cfg: DeployConfig, image: ImageReference, registry: RegistryConfig,
                      context: str) -> None:
    """
    이미지를 로컬에서 빌드한 뒤 GKE 는 레지스트리로 푸시, kind 는 클러스터에 로드한다.
    어느 단계든 실패하면 BuildFailureError 로 배포 전체를 중단한다.
    빌드/푸시/로드에는 시간 제한을 두지 않는다. 제한은 외부 도구에 맡긴다.
    """
    ref = str(image)
    logger.info("이미지 빌드: %s (tool=%s, context=%s)", ref, cfg.container_tool, cfg.build_context_dir)
    try:
        run_command(
            _build_cmd(cfg, ref),
            stream_output=True,
            timeout=None,
            spinner_message=f"이미지 빌드 중: {ref}",
        )
        if registry.push:
            run_command(
                [cfg.container_tool, "push", ref],
                stream_output=True,
                timeout=None,
                spinner_message=f"이미지 푸시 중: {ref}",
            )
        else:
            _load_into_kind(cfg, ref, context)
    except CommandError as e:
        raise BuildFailureError(f"이미지 빌드/배포 실패 ({ref}): {e}") from e

    logger.info("이미지 준비 완료: %s", ref)

"""
kubectl
-------

클러스터 쪽 오브젝트를 server-side apply 로 생성/갱신하는 모듈.
create 를 쓰지 않으므로 같은 설정으로 여러 번 실행해도 "already exists" 로 실패하지 않는다.
"""

from __future__ import annotations

from typing import List, Optional, Union

from .config import DeployConfig
from .errors import ApplyFailureError
from .image import ImageReference
from .kube_context import kubeconfig_env
from .logging_utils import get_logger
from .manifests import (
    ManifestSet,
    access_binding_manifest,
    api_key_secret_manifest,
    application_manifests,
    binding_name,
    namespace_manifest,
    render_template,
    template_substitutions,
)
from .subprocess_utils import CommandError, run_command


logger = get_logger(__name__)


FIELD_MANAGER = "kube-deploy-kit"


def kubectl_cmd(context: str, *args: str) -> List[str]:
    return ["kubectl", f"--context={context}", *args]


def apply_yaml(cfg: DeployConfig, context: str, manifest_yaml: str, *,
               namespace: Optional[str] = None, what: str = "manifests") -> None:
    """
    YAML 문서를 stdin 으로 넘겨 `kubectl apply --server-side` 한다.
    """
    args = ["apply", "--server-side", f"--field-manager={FIELD_MANAGER}", "--force-conflicts"]
    if namespace:
        args += ["-n", namespace]
    args += ["-f", "-"]
    try:
        run_command(
            kubectl_cmd(context, *args),
            env=kubeconfig_env(cfg.kubeconfig),
            input_text=manifest_yaml,
            spinner_message=f"{what} 적용 중",
        )
    except CommandError as e:
        raise ApplyFailureError(f"{what} 적용 실패: {e}") from e


def apply_manifests(cfg: DeployConfig, context: str, manifests: ManifestSet, *,
                    namespace: Optional[str] = None, what: str = "manifests") -> None:
    logger.info("적용: %s (%s)", what, ", ".join(manifests.kinds()))
    apply_yaml(cfg, context, manifests.to_yaml(), namespace=namespace, what=what)


def ensure_namespace(cfg: DeployConfig, context: str) -> None:
    apply_manifests(cfg, context, namespace_manifest(cfg.namespace), what=f"namespace/{cfg.namespace}")


def ensure_access_binding(cfg: DeployConfig, context: str) -> None:
    apply_manifests(
        cfg,
        context,
        access_binding_manifest(cfg.namespace),
        what=f"clusterrolebinding/{binding_name(cfg.namespace)}",
    )


def ensure_secret(cfg: DeployConfig, context: str) -> bool:
    """
    kind 경로에서만 API 키 Secret 을 만든다. GKE 는 Workload Identity 를 쓰므로 만들지 않는다.

    Returns:
        Secret 을 적용했는지 여부
    """
    if not cfg.is_kind:
        logger.debug("GKE 는 Workload Identity 를 사용하므로 Secret 단계를 건너뜁니다.")
        return False
    if not cfg.gemini_api_key:
        logger.warning("GEMINI_API_KEY 가 설정되지 않아 Secret 을 만들지 않습니다.")
        return False

    apply_manifests(
        cfg,
        context,
        api_key_secret_manifest(cfg.namespace, cfg.gemini_api_key),
        namespace=cfg.namespace,
        what="secret/kubectl-ai",
    )
    return True


def render_application(cfg: DeployConfig, image: Union[ImageReference, str],
                       project_id: Optional[str] = None) -> str:
    """
    애플리케이션 매니페스트 YAML 을 만든다.
    MANIFEST_TEMPLATE 이 있으면 템플릿 치환, 없으면 타입 있는 오브젝트를 직렬화한다.
    """
    if cfg.manifest_template:
        with open(cfg.manifest_template, "r", encoding="utf-8") as f:
            template = f.read()
        return render_template(template, template_substitutions(cfg, image, project_id))
    return application_manifests(cfg, image, project_id).to_yaml()


def render_and_apply(cfg: DeployConfig, context: str, image: ImageReference,
                     project_id: Optional[str] = None) -> None:
    try:
        rendered = render_application(cfg, image, project_id)
    except (OSError, ValueError) as e:
        raise ApplyFailureError(f"매니페스트 렌더링 실패: {e}") from e
    apply_yaml(cfg, context, rendered, namespace=cfg.namespace, what="kubectl-ai application")

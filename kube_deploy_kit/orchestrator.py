from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .config import DeployConfig
from .logging_utils import get_logger
from . import (
    image as image_mod,
    kube_context,
    kubectl,
    registry as registry_mod,
)
from .manifests import APP_NAME, SERVICE_PORT, binding_name


logger = get_logger(__name__)

# plan 출력 및 로그에서 사용하는 단계 이름
ALL_STEPS: List[str] = [
    "context",
    "registry",
    "build",
    "namespace",
    "binding",
    "secret",
    "manifests",
]

LOCAL_PORT = 8080


@dataclass
class DeployResult:
    target: str
    namespace: str
    context: str
    image: image_mod.ImageReference
    executed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


def _step_enabled(name: str, cfg: DeployConfig) -> bool:
    if name == "secret":
        return cfg.is_kind and bool(cfg.gemini_api_key)
    return True


def port_forward_command(namespace: str, context: str) -> str:
    return (
        f"kubectl --context={context} -n {namespace} "
        f"port-forward service/{APP_NAME} {LOCAL_PORT}:{SERVICE_PORT}"
    )


def plan_all(cfg: DeployConfig) -> str:
    """
    현재 설정과 실행될 단계 목록을 요약한다. 외부 명령은 호출하지 않는다.
    """
    lines: List[str] = []
    lines.append("# Deploy plan")
    lines.append(f"- target: {cfg.target}")
    lines.append(f"- namespace: {cfg.namespace}")
    lines.append(f"- kube_context: {cfg.kube_context or '(auto)'}")
    lines.append(f"- kubeconfig: {cfg.kubeconfig or '(default)'}")
    if cfg.is_gke:
        lines.append(f"- gcp_project_id: {cfg.gcp_project_id or '(auto: gcloud config)'}")
        lines.append(f"- image_prefix: {cfg.image_prefix or '(default: gcr.io/<project>)'}")
    else:
        lines.append(f"- image_prefix: {registry_mod.KIND_REGISTRY} (kind 로 직접 로드)")
        lines.append(f"- gemini_api_key: {'set' if cfg.gemini_api_key else '(not set)'}")
    lines.append(f"- container_tool: {cfg.container_tool}")
    lines.append(f"- build_context_dir: {cfg.build_context_dir}")
    lines.append(f"- manifest_template: {cfg.manifest_template or '(built-in)'}")
    lines.append(f"- cluster_role_binding: {binding_name(cfg.namespace)}")
    lines.append("")

    lines.append("## Steps")
    for name in ALL_STEPS:
        status = "ENABLED" if _step_enabled(name, cfg) else "SKIPPED"
        lines.append(f"- {name}: {status}")

    return "\n".join(lines)


def deploy_all(cfg: DeployConfig, now: Optional[datetime] = None) -> DeployResult:
    """
    단계를 순서대로 실행한다. 한 단계라도 실패하면 예외가 그대로 올라가 이후 단계는 실행되지 않는다.
    재시도는 하지 않으며, 모든 클러스터 변경이 server-side apply 라 다시 실행해도 안전하다.
    """
    context = kube_context.resolve_context(cfg)

    registry = registry_mod.resolve_registry(cfg)
    registry_mod.configure_registry_auth(cfg, registry)

    image = image_mod.make_image_reference(cfg, registry, now)
    result = DeployResult(target=cfg.target, namespace=cfg.namespace, context=context, image=image)
    result.executed += ["context", "registry"]
    logger.info("배포 이미지: %s", image)

    image_mod.build_and_publish(cfg, image, registry, context)
    result.executed.append("build")

    kubectl.ensure_namespace(cfg, context)
    result.executed.append("namespace")

    kubectl.ensure_access_binding(cfg, context)
    result.executed.append("binding")

    if kubectl.ensure_secret(cfg, context):
        result.executed.append("secret")
    else:
        result.skipped.append("secret")

    kubectl.render_and_apply(cfg, context, image, registry.project_id)
    result.executed.append("manifests")

    return result


def report_result(result: DeployResult) -> str:
    lines: List[str] = []
    lines.append("# Deploy summary")
    lines.append(f"- target: {result.target}")
    lines.append(f"- context: {result.context}")
    lines.append(f"- namespace: {result.namespace}")
    lines.append(f"- image: {result.image}")
    lines.append("")

    lines.append("## Executed steps")
    for s in result.executed or ["(none)"]:
        lines.append(f"- {s}")
    lines.append("")
    lines.append("## Skipped steps")
    for s in result.skipped or ["(none)"]:
        lines.append(f"- {s}")
    lines.append("")

    lines.append("## Access")
    lines.append(f"  {port_forward_command(result.namespace, result.context)}")
    lines.append(f"  then open http://localhost:{LOCAL_PORT}")
    return "\n".join(lines)

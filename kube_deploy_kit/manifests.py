"""
manifests
---------

배포에 필요한 쿠버네티스 오브젝트를 타입이 있는 객체로 만들고,
적용 직전에 YAML 로 직렬화하는 모듈.

문자열 치환 대신 객체를 직접 구성하므로 자리표시자 충돌이 생기지 않는다.
운영자가 별도 템플릿(MANIFEST_TEMPLATE)을 줄 때만 리터럴 토큰 치환을 사용한다.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union

import yaml

from .config import DeployConfig
from .image import ImageReference


APP_NAME = "kubectl-ai"
SERVICE_ACCOUNT_NAME = "kubectl-ai"
SECRET_NAME = "kubectl-ai"
SECRET_API_KEY = "GEMINI_API_KEY"
VIEW_CLUSTER_ROLE = "view"

CONTAINER_PORT = 8888
SERVICE_PORT = 80

IMAGE_TOKEN = "__KUBECTL_AI_IMAGE__"
PROJECT_ID_TOKEN = "__GCP_PROJECT_ID__"


def _metadata(name: str, namespace: Optional[str] = None,
              labels: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    meta: Dict[str, Any] = {"name": name}
    if namespace:
        meta["namespace"] = namespace
    if labels:
        meta["labels"] = dict(labels)
    return meta


@dataclass(frozen=True)
class Namespace:
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"apiVersion": "v1", "kind": "Namespace", "metadata": _metadata(self.name)}


@dataclass(frozen=True)
class ServiceAccount:
    name: str
    namespace: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "apiVersion": "v1",
            "kind": "ServiceAccount",
            "metadata": _metadata(self.name, self.namespace, {"app": APP_NAME}),
        }


@dataclass(frozen=True)
class ClusterRoleBinding:
    name: str
    cluster_role: str
    service_account: str
    service_account_namespace: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "apiVersion": "rbac.authorization.k8s.io/v1",
            "kind": "ClusterRoleBinding",
            "metadata": _metadata(self.name),
            "roleRef": {
                "apiGroup": "rbac.authorization.k8s.io",
                "kind": "ClusterRole",
                "name": self.cluster_role,
            },
            "subjects": [
                {
                    "kind": "ServiceAccount",
                    "name": self.service_account,
                    "namespace": self.service_account_namespace,
                }
            ],
        }


@dataclass(frozen=True)
class Secret:
    name: str
    namespace: str
    string_data: Mapping[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": _metadata(self.name, self.namespace),
            "type": "Opaque",
            "stringData": dict(self.string_data),
        }

    def __repr__(self) -> str:
        # 로그/예외 메시지에 값이 찍히지 않도록 키만 보여준다.
        return f"Secret(name={self.name!r}, namespace={self.namespace!r}, keys={sorted(self.string_data)})"


@dataclass(frozen=True)
class Deployment:
    name: str
    namespace: str
    image: str
    service_account: str
    args: List[str] = field(default_factory=list)
    env: List[Dict[str, Any]] = field(default_factory=list)
    port: int = CONTAINER_PORT
    replicas: int = 1

    def to_dict(self) -> Dict[str, Any]:
        labels = {"app": self.name}
        container: Dict[str, Any] = {
            "name": self.name,
            "image": self.image,
            "args": list(self.args),
            "ports": [{"name": "http", "containerPort": self.port}],
        }
        if self.env:
            container["env"] = [dict(e) for e in self.env]
        return {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": _metadata(self.name, self.namespace, labels),
            "spec": {
                "replicas": self.replicas,
                "selector": {"matchLabels": labels},
                "template": {
                    "metadata": {"labels": labels},
                    "spec": {
                        "serviceAccountName": self.service_account,
                        "containers": [container],
                    },
                },
            },
        }


@dataclass(frozen=True)
class Service:
    name: str
    namespace: str
    port: int = SERVICE_PORT
    target_port: int = CONTAINER_PORT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": _metadata(self.name, self.namespace, {"app": self.name}),
            "spec": {
                "selector": {"app": self.name},
                "ports": [
                    {"name": "http", "port": self.port, "targetPort": self.target_port, "protocol": "TCP"}
                ],
            },
        }


class ManifestSet:
    """
    적용 순서를 유지하는 오브젝트 묶음. 매 실행마다 새로 만들고 저장하지 않는다.
    """

    def __init__(self, objects: Iterable[Any] = ()) -> None:
        self._objects = list(objects)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._objects)

    def __len__(self) -> int:
        return len(self._objects)

    def kinds(self) -> List[str]:
        return [o.to_dict()["kind"] for o in self._objects]

    def to_yaml(self) -> str:
        return yaml.safe_dump_all(
            [o.to_dict() for o in self._objects],
            sort_keys=False,
            default_flow_style=False,
        )


def binding_name(namespace: str) -> str:
    return f"{namespace}:{APP_NAME}:{VIEW_CLUSTER_ROLE}"


def namespace_manifest(namespace: str) -> ManifestSet:
    return ManifestSet([Namespace(namespace)])


def access_binding_manifest(namespace: str) -> ManifestSet:
    """
    배포된 워크로드의 ServiceAccount 에 클러스터 전체 읽기 전용(view) 권한을 준다.
    """
    return ManifestSet([
        ClusterRoleBinding(
            name=binding_name(namespace),
            cluster_role=VIEW_CLUSTER_ROLE,
            service_account=SERVICE_ACCOUNT_NAME,
            service_account_namespace=namespace,
        )
    ])


def api_key_secret_manifest(namespace: str, api_key: str) -> ManifestSet:
    return ManifestSet([Secret(SECRET_NAME, namespace, {SECRET_API_KEY: api_key})])


def application_manifests(cfg: DeployConfig, image: Union[ImageReference, str],
                          project_id: Optional[str] = None) -> ManifestSet:
    """
    kubectl-ai 웹 UI 워크로드(ServiceAccount, Deployment, Service)를 만든다.

    GKE 는 Workload Identity 로 Vertex AI 를 쓰므로 프로젝트 id 만 주입하고,
    kind 는 Secret 의 Gemini API 키를 참조한다 (Secret 이 없어도 파드는 뜬다).
    """
    ns = cfg.namespace
    args = ["--ui-type=web", f"--ui-listen-address=0.0.0.0:{CONTAINER_PORT}"]
    env: List[Dict[str, Any]] = []
    if cfg.is_gke:
        if not project_id:
            raise ValueError("GKE 매니페스트에는 프로젝트 id 가 필요합니다.")
        args.append("--llm-provider=vertexai")
        env.append({"name": "GOOGLE_CLOUD_PROJECT", "value": project_id})
    else:
        args.append("--llm-provider=gemini")
        env.append({
            "name": SECRET_API_KEY,
            "valueFrom": {
                "secretKeyRef": {"name": SECRET_NAME, "key": SECRET_API_KEY, "optional": True}
            },
        })

    return ManifestSet([
        ServiceAccount(SERVICE_ACCOUNT_NAME, ns),
        Deployment(
            name=APP_NAME,
            namespace=ns,
            image=str(image),
            service_account=SERVICE_ACCOUNT_NAME,
            args=args,
            env=env,
        ),
        Service(APP_NAME, ns),
    ])


def render_template(template: str, substitutions: Mapping[str, str]) -> str:
    """
    템플릿의 토큰을 정확히 문자열 그대로 치환한다.

    - 모든 토큰은 템플릿에 최소 한 번 있어야 한다.
    - 치환 값에 다른 토큰이 들어 있으면 안 된다 (부분 충돌 방지).
    - 결과는 YAML 로 파싱 가능해야 한다.
    """
    missing = sorted(t for t in substitutions if t not in template)
    if missing:
        raise ValueError(f"템플릿에 토큰이 없습니다: {', '.join(missing)}")

    for token, value in substitutions.items():
        clashes = [t for t in substitutions if t in value]
        if clashes:
            raise ValueError(f"치환 값이 다른 토큰을 포함합니다: {token} -> {', '.join(clashes)}")

    rendered = template
    for token, value in substitutions.items():
        rendered = rendered.replace(token, value)

    try:
        docs = [d for d in yaml.safe_load_all(rendered) if d is not None]
    except yaml.YAMLError as e:
        raise ValueError(f"치환 결과가 올바른 YAML 이 아닙니다: {e}") from e
    if not docs:
        raise ValueError("템플릿에 오브젝트가 없습니다.")
    return rendered


def template_substitutions(cfg: DeployConfig, image: Union[ImageReference, str],
                           project_id: Optional[str] = None) -> Dict[str, str]:
    subs = {IMAGE_TOKEN: str(image)}
    if cfg.is_gke:
        if not project_id:
            raise ValueError("GKE 템플릿에는 프로젝트 id 가 필요합니다.")
        subs[PROJECT_ID_TOKEN] = project_id
    return subs

"""
kube_deploy_kit
---------------

kubectl-ai 웹 서비스를 GKE 클러스터 또는 로컬 kind 클러스터에 배포하는 CLI 패키지.
환경변수로 설정을 받아 이미지 빌드/푸시(또는 kind 로드), 네임스페이스/RBAC/Secret 준비,
매니페스트 적용까지 한 번에 수행하는 것을 목표로 한다.
"""

__all__ = [
    "config",
    "orchestrator",
]

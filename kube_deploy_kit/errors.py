"""
errors
------

배포 실행을 즉시 중단시키는 오류 분류.
모든 오류는 치명적이며, 복구 방법은 원인을 해결한 뒤 다시 실행하는 것이다.
"""

from __future__ import annotations


class DeployError(RuntimeError):
    kind = "DeployError"


class MissingContextError(DeployError):
    """대상 클러스터(kube context)를 결정할 수 없음. 운영자가 지정해야 한다."""

    kind = "MissingContext"

    def __init__(self, message: str, clusters: str = "") -> None:
        super().__init__(message)
        self.clusters = clusters


class NoClusterFoundError(DeployError):
    """kind 경로에서 사용할 수 있는 로컬 클러스터가 없음."""

    kind = "NoClusterFound"


class BuildFailureError(DeployError):
    kind = "BuildFailure"


class ApplyFailureError(DeployError):
    kind = "ApplyFailure"

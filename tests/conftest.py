"""
pytest 설정:

- repo root 를 sys.path 최상단에 고정해 설치된 다른 버전 대신 현재 소스를 테스트한다.
- 배포 관련 환경변수를 매 테스트마다 비운다 (개발자 셸의 KUBECONFIG 등이 섞이지 않도록).
- fake_commands: 각 모듈의 run_command 를 가짜 실행기로 바꿔 호출된 명령을 기록한다.
"""

from __future__ import annotations

import os
import sys
from typing import Any, Dict, List, Sequence, Tuple

import pytest


def pytest_configure() -> None:
    repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    if repo_root not in sys.path:
        sys.path.insert(0, repo_root)


DEPLOY_ENV_VARS = [
    "GCP_PROJECT_ID",
    "KUBECONFIG",
    "KUBE_CONTEXT",
    "NAMESPACE",
    "IMAGE_PREFIX",
    "IMAGE_NAME",
    "CONTAINER_TOOL",
    "GEMINI_API_KEY",
    "BUILD_CONTEXT_DIR",
    "DOCKERFILE",
    "MANIFEST_TEMPLATE",
    "CLI_SHOW_PROGRESS",
]


@pytest.fixture(autouse=True)
def _clean_deploy_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in DEPLOY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class FakeCommands:
    """
    run_command 대체물.

    on(*tokens, stdout=..., fail=...) 로 규칙을 등록하면, 명령에 tokens 가 모두 포함된 경우
    먼저 등록된 규칙이 적용된다. 규칙이 없으면 빈 stdout 으로 성공한다.
    """

    def __init__(self) -> None:
        self.calls: List[Tuple[List[str], Dict[str, Any]]] = []
        self._rules: List[Tuple[Tuple[str, ...], str, bool]] = []

    def on(self, *tokens: str, stdout: str = "", fail: bool = False) -> "FakeCommands":
        self._rules.append((tokens, stdout, fail))
        return self

    def __call__(self, cmd: Sequence[str], **kwargs: Any):  # noqa: ANN204
        from kube_deploy_kit.subprocess_utils import CommandError, RunResult

        cmd = list(cmd)
        self.calls.append((cmd, kwargs))
        for tokens, stdout, fail in self._rules:
            if all(t in cmd for t in tokens):
                if fail:
                    raise CommandError(f"fake failure: {' '.join(cmd)}", cmd=cmd, returncode=1)
                return RunResult(returncode=0, stdout=stdout, stderr="")
        return RunResult(returncode=0, stdout="", stderr="")

    @property
    def commands(self) -> List[List[str]]:
        return [c for c, _ in self.calls]

    def find(self, *tokens: str) -> List[Tuple[List[str], Dict[str, Any]]]:
        return [(c, kw) for c, kw in self.calls if all(t in c for t in tokens)]


@pytest.fixture
def fake_commands(monkeypatch: pytest.MonkeyPatch) -> FakeCommands:
    from kube_deploy_kit import image, kube_context, kubectl, registry

    fake = FakeCommands()
    for module in (image, kube_context, kubectl, registry):
        monkeypatch.setattr(module, "run_command", fake)
    return fake

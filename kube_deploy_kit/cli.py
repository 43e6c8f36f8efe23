import sys
from typing import Optional, Union

import click

from .config import TARGETS, DeployConfig, load_env_files
from .errors import DeployError, MissingContextError
from .image import ImageReference, make_tag
from .kubectl import render_application
from .logging_utils import setup_logging, get_logger
from .manifests import access_binding_manifest, namespace_manifest
from .orchestrator import deploy_all, plan_all, report_result
from .registry import KIND_REGISTRY


logger = get_logger(__name__)


target_option = click.option(
    "-t",
    "--target",
    "target",
    type=click.Choice(TARGETS, case_sensitive=False),
    required=True,
    help="배포 대상 클러스터 종류 (gke | kind)",
)


@click.group()
@click.option(
    "-C",
    "--chdir",
    "chdir",
    type=click.Path(file_okay=False, dir_okay=True, exists=True),
    default=".",
    help="작업 디렉토리 (.env 파일 위치, 기본: 현재 디렉토리)",
)
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="로그 레벨을 DEBUG로 올립니다.",
)
@click.pass_context
def main(ctx: click.Context, chdir: str, verbose: int) -> None:
    """kubectl-ai 를 GKE / kind 클러스터에 배포하는 CLI"""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["chdir"] = chdir


def _load_config(ctx: click.Context, target: str) -> DeployConfig:
    load_env_files(ctx.obj["chdir"])
    try:
        cfg = DeployConfig.from_env(target)
    except ValueError as e:
        click.echo(f"[ERROR] 설정 로드 실패: {e}", err=True)
        sys.exit(1)
    logger.debug("Config loaded: target=%s namespace=%s", cfg.target, cfg.namespace)
    return cfg


@main.command()
@target_option
@click.pass_context
def plan(ctx: click.Context, target: str) -> None:
    """설정 요약과 실행될 단계 목록을 출력 (클러스터/레지스트리 호출 없음)"""
    cfg = _load_config(ctx, target)
    click.echo(plan_all(cfg))


@main.command()
@target_option
@click.option(
    "--image",
    "image",
    type=str,
    default=None,
    help="매니페스트에 넣을 이미지 (기본: <prefix>/kubectl-ai:<현재시각>)",
)
@click.pass_context
def render(ctx: click.Context, target: str, image: Optional[str]) -> None:
    """적용될 매니페스트 YAML 을 출력만 한다"""
    cfg = _load_config(ctx, target)

    if cfg.is_gke and not cfg.gcp_project_id:
        click.echo("[ERROR] GKE 매니페스트 렌더링에는 GCP_PROJECT_ID 가 필요합니다.", err=True)
        sys.exit(1)

    # --image 는 사용자가 준 문자열 그대로 매니페스트에 넣는다.
    ref: Union[ImageReference, str]
    if image:
        ref = image
    else:
        prefix = KIND_REGISTRY if cfg.is_kind else (cfg.image_prefix or f"gcr.io/{cfg.gcp_project_id}")
        ref = ImageReference(prefix.rstrip("/"), cfg.image_name, make_tag())

    try:
        app_yaml = render_application(cfg, ref, cfg.gcp_project_id)
    except (OSError, ValueError) as e:
        click.echo(f"[ERROR] 렌더링 실패: {e}", err=True)
        sys.exit(1)

    click.echo(namespace_manifest(cfg.namespace).to_yaml(), nl=False)
    click.echo("---")
    click.echo(access_binding_manifest(cfg.namespace).to_yaml(), nl=False)
    click.echo("---")
    click.echo(app_yaml, nl=False)


@main.command(name="deploy")
@target_option
@click.pass_context
def deploy(ctx: click.Context, target: str) -> None:
    """이미지 빌드부터 매니페스트 적용까지 실제로 배포"""
    cfg = _load_config(ctx, target)

    try:
        result = deploy_all(cfg)
    except MissingContextError as e:
        if e.clusters:
            click.echo("사용 가능한 클러스터:", err=True)
            click.echo(e.clusters, err=True)
        click.echo(f"[ERROR] {e.kind}: {e}", err=True)
        sys.exit(1)
    except DeployError as e:
        logger.debug("배포 실패", exc_info=True)
        click.echo(f"[ERROR] {e.kind}: {e}", err=True)
        sys.exit(1)
    except ValueError as e:
        click.echo(f"[ERROR] 설정 오류: {e}", err=True)
        sys.exit(1)

    click.echo(report_result(result))

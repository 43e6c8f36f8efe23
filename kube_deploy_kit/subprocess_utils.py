from __future__ import annotations

import os
import queue
import subprocess
import sys
import threading
import time
from dataclasses import dataclass
from textwrap import shorten
from typing import Mapping, Sequence

from .logging_utils import get_logger


logger = get_logger(__name__)


_BRAILLE_FRAMES = ["⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏"]
_ASCII_FRAMES = ["|", "/", "-", "\\"]


@dataclass(frozen=True)
class RunResult:
    returncode: int
    stdout: str
    stderr: str


class CommandError(RuntimeError):
    """
    외부 명령 실행 실패(미설치/타임아웃/비정상 종료).
    호출한 단계가 자신의 오류 분류(BuildFailure, ApplyFailure 등)로 감싸서 다시 던진다.
    """

    def __init__(self, message: str, *, cmd: Sequence[str], returncode: int | None = None,
                 output: str = "") -> None:
        super().__init__(message)
        self.cmd = list(cmd)
        self.returncode = returncode
        self.output = output


@dataclass(frozen=True)
class _ProgressSettings:
    show: bool = True
    idle_seconds: float = 2.0
    style: str = "braille"  # braille | ascii
    interval: float = 0.12


def _env_bool(name: str) -> bool | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_float(name: str) -> float | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def _pick(*values):  # noqa: ANN001, ANN202
    for v in values:
        if v is not None:
            return v
    return None


def _resolve_progress(
    show: bool | None,
    idle_seconds: float | None,
    style: str | None,
    interval: float | None,
) -> _ProgressSettings:
    # 우선순위: 호출 인자 > env > 기본값
    base = _ProgressSettings()
    return _ProgressSettings(
        show=bool(_pick(show, _env_bool("CLI_SHOW_PROGRESS"), base.show)),
        idle_seconds=float(_pick(idle_seconds, _env_float("CLI_PROGRESS_IDLE_SECONDS"), base.idle_seconds)),
        style=str(_pick(style, os.getenv("CLI_PROGRESS_STYLE"), base.style)),
        interval=float(_pick(interval, _env_float("CLI_PROGRESS_INTERVAL_SECONDS"), base.interval)),
    )


def _is_tty(stream) -> bool:  # noqa: ANN001
    try:
        return bool(getattr(stream, "isatty") and stream.isatty())
    except Exception:  # noqa: BLE001
        return False


def _format_elapsed(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:0.1f}s"
    minutes = int(seconds // 60)
    return f"{minutes}m{int(seconds % 60):02d}s"


class _IdleProgressIndicator:
    """
    명령이 일정 시간 아무 출력도 내지 않을 때만 stderr 한 줄에 스피너를 그린다.
    """

    def __init__(self, message: str, settings: _ProgressSettings, *, stream=None) -> None:  # noqa: ANN001
        self._message = message
        self._stream = stream if stream is not None else sys.stderr
        self._frames = _ASCII_FRAMES if settings.style.strip().lower() == "ascii" else _BRAILLE_FRAMES
        self._interval = max(settings.interval, 0.02)
        self._idle_seconds = max(settings.idle_seconds, 0.0)
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._last_activity = time.monotonic()
        self._last_len = 0

    def touch(self) -> None:
        with self._lock:
            self._last_activity = time.monotonic()
        self.clear()

    def _idle_for(self, now: float) -> float:
        with self._lock:
            return now - self._last_activity

    def _render(self, idx: int, elapsed: float) -> None:
        frame = self._frames[idx % len(self._frames)]
        text = f"{frame} {self._message}  {_format_elapsed(elapsed)}"
        self._last_len = max(self._last_len, len(text))
        self._stream.write("\r" + text)
        self._stream.flush()

    def clear(self) -> None:
        if self._last_len <= 0:
            return
        self._stream.write("\r" + (" " * self._last_len) + "\r")
        self._stream.flush()
        self._last_len = 0

    def start(self) -> None:
        if self._thread is not None:
            return
        started = time.monotonic()

        def _run() -> None:
            idx = 0
            while not self._stop.is_set():
                now = time.monotonic()
                idle = self._idle_for(now)
                if idle < self._idle_seconds:
                    time.sleep(min(self._interval, max(self._idle_seconds - idle, 0.02)))
                    continue
                self._render(idx, now - started)
                idx += 1
                time.sleep(self._interval)

        self._thread = threading.Thread(target=_run, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=1.0)
        self.clear()


def _failure(cmd: Sequence[str], returncode: int, output: str) -> CommandError:
    detail = "\noutput:\n" + shorten(output, width=2000) if output else ""
    return CommandError(
        f"명령 실행 실패: {' '.join(cmd)} (exit={returncode}){detail}",
        cmd=cmd,
        returncode=returncode,
        output=output,
    )


def _not_found(cmd: Sequence[str]) -> CommandError:
    return CommandError(
        f"필요한 명령을 찾을 수 없습니다: {cmd[0]} "
        "(kubectl/kind/gcloud/docker/podman 이 설치되어 있는지 확인하세요)",
        cmd=cmd,
    )


def _timed_out(cmd: Sequence[str], timeout: float | None) -> CommandError:
    return CommandError(f"명령 실행이 {timeout}초 안에 끝나지 않았습니다: {' '.join(cmd)}", cmd=cmd)


def _run_streaming(cmd: Sequence[str], *, cwd, env, timeout, indicator) -> RunResult:  # noqa: ANN001
    # 빌드 도구는 진행 로그를 stderr 로도 내보내므로 STDOUT 으로 합쳐서 흘린다.
    try:
        proc = subprocess.Popen(  # noqa: S603
            list(cmd),
            cwd=cwd,
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            bufsize=1,
        )
    except FileNotFoundError as e:
        raise _not_found(cmd) from e

    lines: queue.Queue[str | None] = queue.Queue()

    def _reader() -> None:
        try:
            assert proc.stdout is not None
            for line in proc.stdout:
                lines.put(line)
        finally:
            lines.put(None)

    reader = threading.Thread(target=_reader, daemon=True)
    reader.start()

    out: list[str] = []
    deadline = None if timeout is None else time.monotonic() + float(timeout)
    try:
        while True:
            if deadline is not None and time.monotonic() >= deadline:
                proc.kill()
                proc.wait()
                raise _timed_out(cmd, timeout)
            try:
                item = lines.get(timeout=0.1)
            except queue.Empty:
                continue
            if item is None:
                break
            if indicator is not None:
                indicator.touch()
            out.append(item)
            sys.stdout.write(item)
            sys.stdout.flush()

        reader.join(timeout=1.0)
        remaining = None if deadline is None else max(deadline - time.monotonic(), 0.0)
        returncode = proc.wait(timeout=remaining)
    except subprocess.TimeoutExpired as e:
        proc.kill()
        proc.wait()
        raise _timed_out(cmd, timeout) from e
    finally:
        if proc.stdout is not None:
            proc.stdout.close()

    combined = "".join(out)
    if returncode != 0:
        raise _failure(cmd, returncode, combined.strip())
    return RunResult(returncode=returncode, stdout=combined, stderr="")


def _run_captured(cmd: Sequence[str], *, cwd, env, timeout, input_text) -> RunResult:  # noqa: ANN001
    try:
        result = subprocess.run(  # noqa: S603
            list(cmd),
            check=True,
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=cwd,
            env=env,
            input=input_text,
        )
    except FileNotFoundError as e:
        raise _not_found(cmd) from e
    except subprocess.TimeoutExpired as e:
        raise _timed_out(cmd, timeout) from e
    except subprocess.CalledProcessError as e:
        output = (e.stderr or "").strip() or (e.stdout or "").strip()
        raise _failure(cmd, e.returncode, output) from e

    if result.stdout:
        logger.debug("명령 stdout: %s", shorten(result.stdout.strip(), width=2000))
    if result.stderr:
        logger.debug("명령 stderr: %s", shorten(result.stderr.strip(), width=2000))
    return RunResult(returncode=result.returncode, stdout=result.stdout or "", stderr=result.stderr or "")


def run_command(
    cmd: Sequence[str],
    *,
    cwd: str | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = 900.0,
    input_text: str | None = None,
    stream_output: bool = False,
    spinner_message: str | None = None,
    show_progress: bool | None = None,
    progress_idle_seconds: float | None = None,
    progress_style: str | None = None,
    progress_interval: float | None = None,
) -> RunResult:
    """
    subprocess 실행 공통 유틸.

    - stream_output=False: stdout/stderr 캡처, input_text 가 있으면 stdin 으로 전달
    - stream_output=True : 출력을 실시간으로 터미널에 흘린다 (빌드처럼 오래 걸리는 명령용)

    실패/미설치/타임아웃은 모두 CommandError 로 올린다.
    stdin 으로 넘기는 내용(매니페스트, 토큰)은 로그에 남기지 않는다.
    """
    logger.info("명령 실행: %s", " ".join(cmd))
    if stream_output and input_text is not None:
        raise ValueError("stream_output 모드에서는 input_text 를 사용할 수 없습니다.")

    settings = _resolve_progress(show_progress, progress_idle_seconds, progress_style, progress_interval)
    indicator: _IdleProgressIndicator | None = None
    if settings.show and _is_tty(sys.stderr):
        message = spinner_message or shorten(" ".join(cmd), width=72, placeholder="…")
        indicator = _IdleProgressIndicator(message, settings, stream=sys.stderr)
        indicator.start()

    run_env = dict(env) if env is not None else None
    try:
        if stream_output:
            return _run_streaming(cmd, cwd=cwd, env=run_env, timeout=timeout, indicator=indicator)
        return _run_captured(cmd, cwd=cwd, env=run_env, timeout=timeout, input_text=input_text)
    finally:
        if indicator is not None:
            indicator.stop()

import logging
import sys


def setup_logging(verbosity: int = 0) -> None:
    # stdout 은 요약/렌더링 결과 전용이므로 로그는 stderr 로 보낸다.
    level = logging.INFO
    if verbosity >= 1:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stderr,
    )
    if verbosity < 2:
        # ADC 탐색 과정의 디버그 로그는 -vv 에서만 본다.
        logging.getLogger("google.auth").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)

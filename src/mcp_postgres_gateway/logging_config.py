"""structlog 설정"""

import logging
import sys

import structlog

from .config import LoggingConfig


def configure_logging(config: LoggingConfig) -> None:
    """
    표준 logging 과 structlog 을 함께 설정

    structlog 이벤트는 stdlib 로거를 통해 출력되므로 uvicorn 로그와
    같은 핸들러/레벨을 공유합니다. json_logs 가 켜져 있으면 JSON 한 줄,
    아니면 개발용 콘솔 포맷으로 출력합니다.
    """
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)

    renderer = (
        structlog.processors.JSONRenderer()
        if config.json_logs
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

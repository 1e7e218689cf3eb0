"""structlog 配置模块

SENDRA_LOG_FORMAT 选择渲染方式（dev 终端可读 / json 结构化），
SENDRA_LOG_LEVEL 控制根日志级别。structlog 与标准库 logging 共用同一条处理器链，
uvicorn、aiosqlite 等第三方日志也按同一格式输出。
"""

import logging
import os

import structlog

# 第三方 logger 的固定级别（aiosqlite 在 DEBUG 下逐条打印 SQL 执行）
_QUIET_LOGGERS: dict[str, int] = {
    "aiosqlite": logging.WARNING,
    "uvicorn.access": logging.WARNING,
}


def _add_service(_logger, _method_name: str, event_dict: dict) -> dict:
    event_dict.setdefault("service", "sendra-gateway")
    return event_dict


def _build_renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer(ensure_ascii=False)
    return structlog.dev.ConsoleRenderer()


def setup_logging(log_format: str | None = None, log_level: str | None = None) -> None:
    """初始化 structlog 与标准库 logging

    Args:
        log_format: "json" 或 "dev"，默认读取 SENDRA_LOG_FORMAT（缺省 dev）
        log_level: 日志级别名，默认读取 SENDRA_LOG_LEVEL（缺省 INFO）
    """
    log_format = log_format or os.environ.get("SENDRA_LOG_FORMAT", "dev")
    log_level = log_level or os.environ.get("SENDRA_LOG_LEVEL", "INFO")

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        _add_service,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if log_format == "json":
        # JSON 输出需要把异常栈展开为字符串
        pre_chain.append(structlog.processors.format_exc_info)

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _build_renderer(log_format),
            ],
            foreign_pre_chain=pre_chain,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    for name, level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

"""dcbstore 日志配置

账本、追加执行与订阅读取都通过 structlog 输出 snake_case 事件
（append_committed、append_condition_failed、storage_error 等），
这里把它们接到标准库 logging 上，由 CLI 或嵌入方在启动时调用一次。
"""

import logging
import os

import structlog


def setup_logging() -> None:
    """配置 structlog 与根 logger

    DCBSTORE_LOG_FORMAT=json 时每个事件输出一行 JSON，便于按 position 检索；
    其他取值使用控制台渲染。DCBSTORE_LOG_LEVEL 设置根 logger 级别，
    非法值按 INFO 处理。会替换根 logger 上已有的 handler。
    """
    log_format = os.environ.get("DCBSTORE_LOG_FORMAT", "dev")
    log_level = os.environ.get("DCBSTORE_LOG_LEVEL", "INFO")

    # 基础处理器链
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer(ensure_ascii=False)
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # 配置标准库 logging
    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

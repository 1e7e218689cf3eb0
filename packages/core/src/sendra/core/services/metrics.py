"""计数指标 -- 默认实现通过 structlog 输出

每次 trigger 调用创建一个实例，累积计数后在 flush 时输出一条日志。
"""

import structlog

log = structlog.get_logger()


class MetricsLogger:
    """MetricsRecorder 的日志实现"""

    def __init__(self, namespace: str = "sendra.actions") -> None:
        self.namespace = namespace
        self.metrics: dict[str, int] = {}

    def add_metric(self, name: str, value: int) -> None:
        self.metrics[name] = self.metrics.get(name, 0) + value

    def flush(self) -> None:
        log.info("metrics_flushed", namespace=self.namespace, **self.metrics)
        self.metrics = {}

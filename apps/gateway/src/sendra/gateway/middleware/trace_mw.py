"""TraceMiddleware -- 为项目级请求绑定 project_id

从 /projects/{project_id}/... 路径中提取 project_id，贯穿该请求的所有日志。
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response


class TraceMiddleware(BaseHTTPMiddleware):
    """项目级追踪中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        parts = request.url.path.strip("/").split("/")
        if len(parts) >= 2 and parts[0] == "projects" and parts[1]:
            structlog.contextvars.bind_contextvars(project_id=parts[1])

        return await call_next(request)

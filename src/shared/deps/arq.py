# src/shared/deps/arq.py
from typing import Optional

from fastapi import Request
from arq.connections import ArqRedis


def get_arq_pool(request: Request) -> Optional[ArqRedis]:
    """
    一个 FastAPI 依赖项，用于从 app.state 中获取 arq 连接池。
    通知未启用或连接失败时返回 None。
    """
    return getattr(request.app.state, "arq_pool", None)

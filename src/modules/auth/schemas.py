# src/modules/auth/schemas.py

from pydantic import BaseModel


class TokenPayload(BaseModel):
    """
    JWT Token 中存储的数据
    """
    sub: str  # subject, 存储 user_uid

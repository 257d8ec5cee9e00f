# src/modules/auth/security.py

from datetime import datetime, timedelta, timezone

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from jose import jwt, JWTError

from src.core.config import settings
from src.core.database import get_db
from src.shared.models.user_models import User
from src.modules.auth.schemas import TokenPayload

# 从 Header 中提取 "Authorization: Bearer <token>"
# Token 由外部身份服务签发，本服务只负责校验
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")

# 定义我们的 JWT 设置
JWT_SECRET_KEY = settings.SECRET_KEY
ALGORITHM = "HS256"

# --- 标准错误 ---

CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Could not validate credentials",
    headers={"WWW-Authenticate": "Bearer"},
)

FORBIDDEN_EXCEPTION = HTTPException(
    status_code=status.HTTP_403_FORBIDDEN,
    detail="You do not have permission to perform this action",
)


def create_access_token(subject: str, expires_minutes: int | None = None) -> str:
    """签发访问令牌 (运维脚本和测试使用)"""
    minutes = expires_minutes if expires_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    expire = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    to_encode = {
        "exp": expire,
        "sub": str(subject),
    }
    return jwt.encode(to_encode, JWT_SECRET_KEY, algorithm=ALGORITHM)


# --- 依赖项 1：获取当前登录的用户（无论角色） ---

async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    解码 JWT Token，获取用户。
    如果 Token 无效、用户不存在或账号被禁用，则抛出 401 异常。
    """
    try:
        payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[ALGORITHM])
        user_uid: str | None = payload.get("sub")

        if user_uid is None:
            raise CREDENTIALS_EXCEPTION

        token_data = TokenPayload(sub=user_uid)

    except JWTError:
        raise CREDENTIALS_EXCEPTION

    # 从数据库中获取用户
    query = select(User).where(User.uid == token_data.sub)
    result = await db.execute(query)
    user = result.scalars().first()

    if user is None or not user.is_active:
        raise CREDENTIALS_EXCEPTION

    return user


# --- 依赖项 2：获取当前技师 ---

async def get_current_technician(
    current_user: User = Depends(get_current_user)
) -> User:
    """确保当前用户是技师 (账号已启用由 get_current_user 保证)"""
    if current_user.role != "technician":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not a valid technician",
        )
    return current_user


# --- 依赖项 3：获取当前管理员用户 ---

async def get_current_admin_user(
    current_user: User = Depends(get_current_user)
) -> User:
    """
    确保当前用户不仅已登录，而且角色是 'admin'。
    如果不是 'admin'，则抛出 403 异常。
    """
    if current_user.role != "admin":
        raise FORBIDDEN_EXCEPTION

    return current_user

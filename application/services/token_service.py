"""
令牌服务 - 校验访问令牌并解析调用方身份

认证由外部系统负责；本服务只验证 HS256 签名的 JWT，并从声明中读取
``sub``（用户）、``licensee_id``（租户，缺省为用户本人）与 ``role``。
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
import uuid

import jwt

from application.dto import PrincipalDTO
from core.config import settings
from core.exceptions import TokenExpiredException, UnauthorizedException
from core.logging_config import get_logger


logger = get_logger(__name__)


class TokenService:

    def __init__(
        self,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
        expire_minutes: Optional[int] = None,
    ):
        self._secret_key = secret_key or settings.SECRET_KEY
        self._algorithm = algorithm or settings.ALGORITHM
        self._expire_minutes = expire_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES

    def create_access_token(self, principal: PrincipalDTO) -> str:
        """签发访问令牌（供运维脚本与测试使用）"""
        expire = datetime.now(timezone.utc) + timedelta(minutes=self._expire_minutes)
        to_encode = {
            "sub": principal.user_id,
            "licensee_id": principal.licensee_id,
            "role": principal.role,
            "exp": expire,
            "type": "access",
            "jti": str(uuid.uuid4()),
        }
        return jwt.encode(to_encode, self._secret_key, algorithm=self._algorithm)

    def decode_principal(self, token: str) -> PrincipalDTO:
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError:
            raise TokenExpiredException()
        except jwt.InvalidTokenError as exc:
            logger.info("token_rejected", reason=str(exc))
            raise UnauthorizedException("Invalid token")

        if payload.get("type", "access") != "access":
            raise UnauthorizedException("Invalid token type")
        user_id = payload.get("sub")
        if not user_id:
            raise UnauthorizedException("Token missing subject")

        licensee_id = payload.get("licensee_id") or payload.get("licenseeId") or str(user_id)
        return PrincipalDTO(user_id=str(user_id), licensee_id=str(licensee_id), role=payload.get("role"))

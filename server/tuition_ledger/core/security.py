"""
tuition_ledger/core/security.py
Bearer token verification and role checks
"""
from datetime import datetime
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from tuition_ledger.core.config import settings
from tuition_ledger.models.schemas import UserRole, TokenPayload
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer()

def verify_token(token: str) -> TokenPayload:
    """Verify and decode JWT token"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        user_id: str = payload.get("sub")
        role: str = payload.get("role")

        if user_id is None or role is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token payload"
            )

        return TokenPayload(
            sub=user_id,
            role=UserRole(role),
            exp=datetime.fromtimestamp(payload.get("exp")),
            so_center_id=payload.get("so_center_id")
        )
    except (JWTError, ValueError) as e:
        logger.error(f"JWT verification failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials"
        )

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> TokenPayload:
    """Get current authenticated user from token"""
    token = credentials.credentials
    return verify_token(token)

# Role-based dependencies

async def require_admin(current_user: TokenPayload = Depends(get_current_user)):
    """Require admin role"""
    if current_user.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return current_user

async def require_center_staff(current_user: TokenPayload = Depends(get_current_user)):
    """Require admin or SO Center role"""
    if current_user.role not in [UserRole.ADMIN, UserRole.SO_CENTER]:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin or SO Center access required"
        )
    return current_user

from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from fastapi import HTTPException, Request, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from ..config import settings
from .social_graph import SocialGraph

# JWT token schemes
security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


def get_graph(request: Request) -> SocialGraph:
    """Dependency returning the graph facade built at app startup"""
    return request.app.state.graph


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


class JWTService:
    @staticmethod
    def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
        """Create a JWT access token"""
        to_encode = data.copy()

        if expires_delta:
            expire = datetime.now(timezone.utc) + expires_delta
        else:
            expire = datetime.now(timezone.utc) + \
                timedelta(minutes=settings.jwt_expiry_minutes)

        to_encode.update({"exp": expire})
        return jwt.encode(
            to_encode,
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm
        )

    @staticmethod
    def create_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
        """Create a JWT token for user authentication"""
        return JWTService.create_access_token({"sub": str(user_id)}, expires_delta)

    @staticmethod
    def verify_token(token: str) -> int:
        """Verify a JWT token and return the user id it was issued for"""
        try:
            payload = jwt.decode(
                token,
                settings.jwt_secret_key,
                algorithms=[settings.jwt_algorithm]
            )
        except JWTError:
            raise _unauthorized("Could not validate credentials")

        user_id_str = payload.get("sub")
        if user_id_str is None:
            raise _unauthorized("Could not validate credentials")
        try:
            return int(user_id_str)
        except (ValueError, TypeError):
            raise _unauthorized("Invalid user ID in token")

    @staticmethod
    async def get_current_user_id(
        credentials: HTTPAuthorizationCredentials = Depends(security),
        graph: SocialGraph = Depends(get_graph),
    ) -> int:
        """Get the authenticated viewer id from the JWT token"""
        user_id = JWTService.verify_token(credentials.credentials)
        if user_id < 1 or not await graph.users.exists(user_id):
            raise _unauthorized("User not found")
        return user_id

    @staticmethod
    async def get_optional_user_id(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
        graph: SocialGraph = Depends(get_graph),
    ) -> Optional[int]:
        """Viewer id when a token is supplied, None for anonymous callers"""
        if credentials is None:
            return None
        return await JWTService.get_current_user_id(credentials, graph)

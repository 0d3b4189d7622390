import jwt
from datetime import datetime, timedelta
from typing import Optional

from .models import AdminUser


class InvalidToken(Exception):
    def __init__(self, msg: str = None, *args):
        message = f"Invalid token: {msg}" if msg else "Invalid token"
        super().__init__(message, *args)


class Token:
    def __init__(self, secret: str, algorithm: str = "HS256"):
        self._secret = secret
        self._algo = algorithm

    def create(
        self,
        payload: dict,
        expires_at: Optional[datetime] = None,
        not_before: Optional[datetime] = None,
    ) -> str:
        claims = payload.copy()
        if not_before:
            claims["nbf"] = int(not_before.timestamp())
        if expires_at:
            claims["exp"] = int(expires_at.timestamp())
        claims["iat"] = int(datetime.now().timestamp())
        return jwt.encode(claims, self._secret, algorithm=self._algo)

    def extract(self, token: str) -> dict:
        try:
            return jwt.decode(
                token,
                self._secret,
                algorithms=[self._algo],
                options={"verify_exp": True, "verify_nbf": True, "verify_iat": True},
            )
        except jwt.ExpiredSignatureError as e:
            raise InvalidToken("token has expired") from e
        except jwt.PyJWTError as e:
            raise InvalidToken(str(e)) from e

    def refresh(
        self,
        token: str,
        expires_at: Optional[datetime] = None,
        not_before: Optional[datetime] = None,
    ) -> str:
        claims = self.extract(token)
        claims.pop("iat", None)
        claims.pop("nbf", None)
        claims.pop("exp", None)

        return self.create(claims, expires_at, not_before)

    def issue(self, principal: AdminUser, expires_in: int = 900) -> str:
        """Session token naming the principal; permissions are never baked in."""
        return self.create(
            {"sub": principal.uid, "role_id": principal.role_id},
            expires_at=self.seconds(expires_in),
        )

    def principal_uid(self, token: str) -> str:
        uid = self.extract(token).get("sub")
        if not uid:
            raise InvalidToken("missing subject")
        return uid

    @staticmethod
    def days(after: int) -> datetime:
        return datetime.now() + timedelta(days=after)

    @staticmethod
    def hours(after: int) -> datetime:
        return datetime.now() + timedelta(hours=after)

    @staticmethod
    def seconds(after: int) -> datetime:
        return datetime.now() + timedelta(seconds=after)

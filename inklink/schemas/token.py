# inklink/schemas/token.py
from pydantic import BaseModel

from inklink.constants.statuses import UserRole


class TokenPayload(BaseModel):
    sub: str  # "sub" is the standard claim for subject (user or profile ID)
    role: UserRole
    exp: int  # Standard claim for expiration time

    model_config = {
        "from_attributes": True,
    }

    @property
    def is_client(self) -> bool:
        return self.role == UserRole.CLIENT

    @property
    def is_responder(self) -> bool:
        return self.role in (UserRole.ARTIST, UserRole.STUDIO)

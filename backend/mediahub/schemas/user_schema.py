from datetime import datetime
from typing import Annotated, Any, Mapping, Optional

from pydantic import AfterValidator, AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator

# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72
USERNAME_PATTERN = r"^[A-Za-z0-9_.-]+$"


def _check_password(value: str) -> str:
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
    return value


Password = Annotated[str, Field(min_length=8), AfterValidator(_check_password)]


class IdentityBase(BaseModel):
    username: str = Field(min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    email: EmailStr
    full_name: str = Field(min_length=1, max_length=100)

    @field_validator("username", "full_name", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value


class IdentityCreate(IdentityBase):
    password: Password


class AccountDetailsUpdate(BaseModel):
    """Profile fields a user may change without touching the credential."""

    model_config = ConfigDict(extra="forbid")

    email: Optional[EmailStr] = None
    full_name: Optional[str] = Field(default=None, min_length=1, max_length=100)


class IdentityUpdate(AccountDetailsUpdate):
    """Persistence-level update.

    ``password`` is the only way to change the stored credential; setting it
    is the explicit signal that the credential changed. ``credential_hash``
    itself can never be written through this model (extra fields are
    forbidden).
    """

    password: Optional[Password] = None


class Identity(BaseModel):
    """Public view of an identity; never carries hashes."""

    id: str
    username: str
    email: str
    full_name: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_doc(cls, doc: Mapping[str, Any]) -> "Identity":
        return cls(
            id=str(doc["_id"]),
            username=doc.get("username", ""),
            email=doc.get("email", ""),
            full_name=doc.get("full_name", ""),
            created_at=doc.get("created_at"),
            updated_at=doc.get("updated_at"),
        )


class ChannelProfile(BaseModel):
    id: str
    username: str
    full_name: str
    email: str
    subscribers_count: int = 0
    channels_subscribed_to_count: int = 0
    is_subscribed: bool = False
    created_at: Optional[datetime] = None


class LoginRequest(BaseModel):
    identifier: str = Field(min_length=1, validation_alias=AliasChoices("identifier", "username", "email"))
    password: str = Field(min_length=1)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: Password


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = None


class LoginResult(BaseModel):
    user: Identity
    tokens: TokenPair

from pydantic import BaseModel, ConfigDict, EmailStr
from pydantic.alias_generators import to_camel
from typing import Optional


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExternalIdentity(BaseModel):
    """Identity as supplied by the OAuth provider"""
    external_id: str
    email: EmailStr
    name: str
    avatar_url: Optional[str] = None


class GoogleLogin(BaseModel):
    credential: str


class AdminLogin(BaseModel):
    username: str
    password: str

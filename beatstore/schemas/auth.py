from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1)


class LoginResponse(BaseModel):
    user_id: str
    username: str
    role: str
    token: str


class PasswordResetRequest(BaseModel):
    identifier: str = Field(..., min_length=1, max_length=255)  # username or email


class PasswordResetConfirm(BaseModel):
    identifier: str = Field(..., min_length=1, max_length=255)
    code: str = Field(..., pattern=r"^\d{6}$")
    new_password: str = Field(..., min_length=8, max_length=128)


class MessageResponse(BaseModel):
    message: str

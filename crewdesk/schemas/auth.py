from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    username: str
    password: str


class WorkerLoginRequest(BaseModel):
    national_id: str = Field(min_length=1)


class PasswordChangeRequest(BaseModel):
    current_password: str
    new_password: str = Field(min_length=8)

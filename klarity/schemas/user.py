from pydantic import BaseModel


class UserCreate(BaseModel):
    id: int  # Telegram user_id
    username: str | None = None
    first_name: str = ""
    last_name: str | None = None

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class CreateRoomRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_id: Optional[str] = Field(None, alias="roomId")

class CreateRoomResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    room_id: str = Field(alias="roomId")
    ws_url: str

class CreateRoomConflict(BaseModel):
    success: bool = False
    error: str

class RoomDetailsResponse(BaseModel):
    room_id: str
    created_at: str
    online_users_count: int
    online_users: list[str]

from pydantic import BaseModel


class OnlineUser(BaseModel):
    connection_id: str
    display_name: str
    connected_at: str

class RoomDetailsResponse(BaseModel):
    room_code: str
    online_users_count: int
    online_users: list[OnlineUser]

class HealthResponse(BaseModel):
    status: str
    connections: int
    rooms: int

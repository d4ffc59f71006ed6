from fastapi import APIRouter, HTTPException, Request
from schemas.rooms import OnlineUser, RoomDetailsResponse
from backend import room_directory
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


@rooms_router.get("/{room_code}", response_model=RoomDetailsResponse)
async def get_room_details(room_code: str, request: Request):
    """
    Current occupancy of a live room.

    Rooms only exist while they have members, so an empty or unknown
    room code is a 404.
    """
    client_host = request.client.host if request.client else 'unknown'
    logger.info(f"Room details request for {room_code} from {client_host}")

    members = room_directory.members(room_code)
    if not members:
        logger.debug(f"Room details failed: Room {room_code} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    online_users = [
        OnlineUser(
            connection_id=member.connection_id,
            display_name=member.display_name,
            connected_at=member.connected_at,
        )
        for member in members
    ]

    return RoomDetailsResponse(
        room_code=room_code,
        online_users_count=len(online_users),
        online_users=online_users,
    )

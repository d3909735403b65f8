from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict
from datetime import datetime

# Los documentos persistidos usan camelCase; los modelos aceptan el alias
# o el nombre del campo.


class _Doc(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ----- Documentos persistidos -----
class ParticipantDetails(_Doc):
    display_name: str = Field(alias="displayName")
    email: str = ""
    photo_url: str = Field("", alias="photoURL")


class ChatRoom(_Doc):
    id: str
    participants: List[str]
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    last_message: str = Field("", alias="lastMessage")
    last_message_time: Optional[datetime] = Field(None, alias="lastMessageTime")
    participant_details: Dict[str, ParticipantDetails] = Field(
        default_factory=dict, alias="participantDetails"
    )


class MessageUser(_Doc):
    id: str
    name: str
    avatar: Optional[str] = None


class Message(_Doc):
    id: str
    text: str
    created_at: datetime = Field(alias="createdAt")
    user: MessageUser
    chat_room_id: str = Field(alias="chatRoomId")


# ----- Requests -----
class ProfileInput(_Doc):
    """Datos de perfil que el llamador entrega al crear una sala."""
    display_name: Optional[str] = Field(None, alias="displayName")
    email: Optional[str] = None
    photo_url: Optional[str] = Field(None, alias="photoURL")


class ChatRoomCreate(_Doc):
    other_user_id: str = Field(min_length=1, alias="otherUserId")
    me: Optional[ProfileInput] = None
    other: Optional[ProfileInput] = None


class MessageCreate(_Doc):
    text: str = Field(min_length=1, max_length=4000)
    user: Optional[MessageUser] = None


# ----- Responses / derivados -----
class ChatRoomRef(_Doc):
    chat_room_id: str = Field(alias="chatRoomId")


class UserChatSummary(_Doc):
    chat_room_id: str = Field(alias="chatRoomId")
    other_user_id: str = Field(alias="otherUserId")
    other_user_name: str = Field(alias="otherUserName")
    other_user_photo: Optional[str] = Field(None, alias="otherUserPhoto")
    last_message: str = Field("", alias="lastMessage")
    last_message_time: Optional[datetime] = Field(None, alias="lastMessageTime")


class UserStub(_Doc):
    uid: str
    display_name: Optional[str] = Field(None, alias="displayName")
    email: Optional[str] = None
    photo_url: Optional[str] = Field(None, alias="photoURL")

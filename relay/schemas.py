from pydantic import BaseModel, Field
from typing import Any, List, Optional

# ---- field-tagged envelope (wire only) ----

class TaggedValue(BaseModel):
    stringValue: Optional[str] = None
    booleanValue: Optional[bool] = None
    doubleValue: Optional[float] = None
    integerValue: Optional[str] = None

    def as_string(self) -> str:
        if self.stringValue is not None:
            return self.stringValue
        return self.integerValue or ""

    def as_bool(self) -> bool:
        return bool(self.booleanValue)

    def as_double(self) -> Optional[float]:
        if self.doubleValue is not None:
            return self.doubleValue
        for raw in (self.integerValue, self.stringValue):
            if raw is not None:
                try:
                    return float(raw)
                except ValueError:
                    return None
        return None

class MessageFields(BaseModel):
    text: Optional[TaggedValue] = None
    isKyle: Optional[TaggedValue] = None
    timestamp: Optional[TaggedValue] = None
    room: Optional[TaggedValue] = None
    chatId: Optional[TaggedValue] = None
    imageBase64: Optional[TaggedValue] = None

class MessageDocumentIn(BaseModel):
    fields: Optional[MessageFields] = None

class StatusFields(BaseModel):
    lastActive: Optional[TaggedValue] = None

class StatusDocumentIn(BaseModel):
    fields: Optional[StatusFields] = None

# ---- plain request bodies ----

class TitleIn(BaseModel):
    title: Any = None

class PublicKeyIn(BaseModel):
    publicKey: Any = None

class DeviceTokenIn(BaseModel):
    token: Optional[str] = None

class NicknameIn(BaseModel):
    nickname: Optional[str] = Field(default=None, max_length=64)

# ---- responses ----

class SendOut(BaseModel):
    status: str = "Message Saved"
    id: str
    chatId: str

class ChatCreatedOut(BaseModel):
    chatId: str
    title: str
    userEmail: str
    createdAt: float

class ChatOut(BaseModel):
    chatId: str
    userEmail: str
    title: str
    createdAt: float
    deletedByUser: bool
    messageCount: int
    latestMessageTimestamp: float
    isUnread: bool

class ChatListOut(BaseModel):
    chats: List[ChatOut]

class DashboardUserOut(BaseModel):
    userEmail: str
    nickname: str
    latestActivity: float
    chats: List[ChatOut]

class DashboardOut(BaseModel):
    users: List[DashboardUserOut]

class PublicKeyOut(BaseModel):
    email: str
    publicKey: str

class GuestOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    identity: str

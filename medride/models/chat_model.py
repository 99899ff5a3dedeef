"""
Chat Models - Consultation chats between a patient and a doctor
Status flow: pending → active → completed/cancelled
"""

from mongoengine import (
    Document,
    StringField,
    BooleanField,
    DateTimeField,
    ListField,
    DictField,
)

from medride.models.user_model import _new_id, _utcnow


class Chat(Document):
    """Chat session; patient_id and doctor_id are the only authorized parties"""

    meta = {
        "collection": "chats",
        "indexes": ["patient_id", "doctor_id", "-updated_at"],
    }

    id = StringField(primary_key=True, default=_new_id)
    patient_id = StringField(required=True)
    doctor_id = StringField(required=True)
    status = StringField(
        choices=["pending", "active", "completed", "cancelled"], default="pending"
    )

    created_at = DateTimeField(default=_utcnow)
    updated_at = DateTimeField(default=_utcnow)

    def parties(self) -> dict:
        return {"patient_id": self.patient_id, "doctor_id": self.doctor_id}

    def __str__(self):
        return f"Chat({self.id}, {self.status})"


class Message(Document):
    """Single chat message"""

    meta = {
        "collection": "messages",
        "indexes": [("chat_id", "created_at"), ("chat_id", "read_flag")],
    }

    id = StringField(primary_key=True, default=_new_id)
    chat_id = StringField(required=True)
    sender_id = StringField(required=True)
    content = StringField(required=True)
    attachments = ListField(DictField(), default=list)
    message_type = StringField(
        choices=["text", "image", "file", "voice"], default="text"
    )
    read_flag = BooleanField(default=False)

    created_at = DateTimeField(default=_utcnow)

    def to_dict(self):
        """Convert message to the wire shape used by new_message"""
        return {
            "id": self.id,
            "chat_id": self.chat_id,
            "sender_id": self.sender_id,
            "content": self.content,
            "attachments": list(self.attachments or []),
            "message_type": self.message_type,
            "read_flag": self.read_flag,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __str__(self):
        return f"Message({self.id}, chat={self.chat_id})"

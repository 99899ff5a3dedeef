"""
Notification Model - Per-user notification feed entries
"""

from mongoengine import Document, StringField, BooleanField, DateTimeField, DictField

from medride.models.user_model import _new_id, _utcnow


class Notification(Document):
    meta = {
        "collection": "notifications",
        "indexes": [("user_id", "-created_at"), ("user_id", "is_read")],
    }

    id = StringField(primary_key=True, default=_new_id)
    user_id = StringField(required=True)
    notification_type = StringField(required=True, max_length=50)
    title = StringField(max_length=200)
    body = StringField()
    data = DictField()
    is_read = BooleanField(default=False)

    created_at = DateTimeField(default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "notification_type": self.notification_type,
            "title": self.title,
            "body": self.body,
            "data": dict(self.data or {}),
            "is_read": self.is_read,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

"""
Todo Collaboration Service
Todo domain model.

Models:
    - Todo: task record owned by exactly one Person
"""

from datetime import datetime, timezone

from todo_app.models import db


# ── Constants ────────────────────────────────────────────────────────────────

TODO_STATUSES = {"OPEN", "IN_PROGRESS", "DONE"}
TITLE_MAX_LENGTH = 30
DESCRIPTION_MAX_LENGTH = 100
PRIORITY_MIN = 1
PRIORITY_MAX = 10


class Todo(db.Model):
    """
    Task entity.

    Owns its collaboration requests: deleting a Todo deletes every pending
    request that references it.
    """

    __tablename__ = "todos"

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(
        db.Integer, db.ForeignKey("persons.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    title = db.Column(db.String(TITLE_MAX_LENGTH), nullable=False)
    description = db.Column(db.String(DESCRIPTION_MAX_LENGTH), default="")
    priority = db.Column(db.Integer, nullable=False, default=PRIORITY_MIN)
    due_date = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="OPEN")

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    owner = db.relationship("Person", back_populates="todos")
    collaboration_requests = db.relationship(
        "CollaborationRequest", back_populates="todo",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="CollaborationRequest.id",
    )

    def to_dict(self, include_requests=False):
        d = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "status": self.status,
            "owner": self.owner.to_dict() if self.owner else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_requests:
            # Tokens are bearer secrets and never serialized here
            d["collaboration_requests"] = [
                {"id": r.id, "collaborator": r.collaborator.to_dict()}
                for r in self.collaboration_requests
            ]
        return d

    def to_message(self):
        """Compact form embedded in queue payloads."""
        return {"id": self.id, "title": self.title, "owner": self.owner.name if self.owner else None}

    def __repr__(self):
        return f"<Todo {self.id}: {self.title[:30]}>"

"""
Todo Collaboration Service
Collaboration request domain model.

Models:
    - CollaborationRequest: pending invitation of a Person to a Todo
"""

from datetime import datetime, timezone

from todo_app.models import db


class CollaborationRequest(db.Model):
    """
    Pending invitation.

    Lives until the collaborator confirms it with the matching token, at
    which point the row is deleted. There is no expiry.
    """

    __tablename__ = "todo_collaboration_requests"

    id = db.Column(db.Integer, primary_key=True)
    todo_id = db.Column(
        db.Integer, db.ForeignKey("todos.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    collaborator_id = db.Column(
        db.Integer, db.ForeignKey("persons.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    token = db.Column(db.String(64), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    todo = db.relationship("Todo", back_populates="collaboration_requests")
    collaborator = db.relationship("Person")

    __table_args__ = (
        db.Index("ix_collab_requests_todo_collaborator", "todo_id", "collaborator_id"),
    )

    def to_message(self):
        """Queue payload: everything the consumer needs to mail the invitation."""
        return {
            "id": self.id,
            "token": self.token,
            "todo": self.todo.to_message(),
            "collaborator": self.collaborator.to_message(),
        }

    def __repr__(self):
        return f"<CollaborationRequest {self.id}: todo={self.todo_id} collaborator={self.collaborator_id}>"

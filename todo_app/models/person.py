"""
Todo Collaboration Service
Person domain model.

Models:
    - Person: todo owner / invited collaborator identity
"""

from datetime import datetime, timezone

from todo_app.models import db


class Person(db.Model):
    """
    A user known to the service.

    ``name`` is the login key of the identity provider and therefore unique.
    Persons are created lazily on the first todo save of a new identity and
    never deleted automatically.
    """

    __tablename__ = "persons"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True, index=True)
    email = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    todos = db.relationship("Todo", back_populates="owner", lazy="select")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
        }

    def to_message(self):
        """Compact form embedded in queue payloads."""
        return {"id": self.id, "name": self.name, "email": self.email}

    def __repr__(self):
        return f"<Person {self.id}: {self.name}>"

"""Person service layer.

Rules:
  - The caller identity is always an explicit parameter (never from g).
  - db.session.commit() happens only in the service layer.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from todo_app.core.exceptions import NotFoundError
from todo_app.identity import IdentityContext
from todo_app.models import db
from todo_app.models.person import Person

logger = logging.getLogger(__name__)


def find_person_by_name(name: str) -> Person | None:
    return db.session.execute(
        select(Person).where(Person.name == name)
    ).scalar_one_or_none()


def get_person(person_id: int) -> Person:
    """Return the Person or raise NotFoundError."""
    person = db.session.get(Person, person_id)
    if person is None:
        raise NotFoundError("Person", person_id)
    return person


def get_or_create_person(identity: IdentityContext) -> Person:
    """Return the Person for ``identity.name``, creating it on first use.

    The unique constraint on ``persons.name`` decides concurrent first
    saves: the loser rolls back and reads the winner's row.
    """
    person = find_person_by_name(identity.name)
    if person is not None:
        return person

    person = Person(name=identity.name, email=identity.email)
    db.session.add(person)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        person = find_person_by_name(identity.name)
        if person is None:
            raise
        return person

    logger.info("Provisioned person id=%s for new identity", person.id, extra={"user": identity.name})
    return person


def list_persons(exclude_name: str | None = None) -> list[Person]:
    """Return every Person ordered by name, optionally without the caller."""
    stmt = select(Person).order_by(Person.name)
    if exclude_name:
        stmt = stmt.where(Person.name != exclude_name)
    return list(db.session.execute(stmt).scalars())

import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict

from loguru import logger
from sqlalchemy.engine import Engine
from sqlmodel import Session

from agrolink.db.schema import Notification, NotificationKind


class Notifier(ABC):
    """
    Fire-and-forget notification sink. Implementations decide how (and
    whether) the message is delivered; callers never wait on delivery and
    never see delivery errors.
    """

    @abstractmethod
    def notify(self, user_id: uuid.UUID, kind: NotificationKind, payload: Dict[str, Any]) -> None: ...

    @abstractmethod
    def notify_address(self, email: str, kind: NotificationKind, payload: Dict[str, Any]) -> None:
        """For recipients that do not have an account yet (invitations)."""


class OutboxNotifier(Notifier):
    """
    Writes notification requests to the `notification` outbox table for the
    email/SMS worker to pick up.
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    def notify(self, user_id, kind, payload):
        self._enqueue(kind, payload, recipient_user_id=user_id)

    def notify_address(self, email, kind, payload):
        self._enqueue(kind, payload, recipient_email=email)

    def _enqueue(self, kind: NotificationKind, payload: Dict[str, Any], **recipient):
        try:
            # Own session: an outbox failure must not touch the caller's transaction.
            with Session(self.engine) as session:
                session.add(Notification(kind=kind, payload=payload, **recipient))
                session.commit()
            logger.info(f"Queued {kind.value} notification for {recipient}")
        except Exception:
            logger.exception(f"Failed to queue {kind.value} notification")

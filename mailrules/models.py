import json
from collections import namedtuple
from datetime import datetime, timezone

from mailrules.extensions import db

Address = namedtuple("Address", ["personal", "address"])


def _utcnow():
    return datetime.now(timezone.utc)


def _load_document(text):
    try:
        return json.loads(text)
    except ValueError:
        return text


class Account(db.Model):
    """IMAP mail account."""

    __tablename__ = "accounts"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    imap_host = db.Column(db.String(255), nullable=False)
    imap_port = db.Column(db.Integer, nullable=False, default=993)
    imap_user = db.Column(db.String(255), nullable=False)
    imap_password = db.Column(db.String(255), nullable=False)
    ssl_mode = db.Column(db.String(20), nullable=False, default="ssl")  # "none", "starttls", "ssl"
    enabled = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    folders = db.relationship(
        "Folder", back_populates="account", cascade="all, delete-orphan"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "imap_host": self.imap_host,
            "imap_port": self.imap_port,
            "imap_user": self.imap_user,
            "ssl_mode": self.ssl_mode,
            "enabled": self.enabled,
        }

    def __repr__(self):
        return f"<Account {self.name}>"


class Folder(db.Model):
    """A synchronized mailbox; rules apply to the messages of one folder."""

    __tablename__ = "folders"

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(
        db.Integer, db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    name = db.Column(db.String(255), nullable=False)  # Mailbox name as shown by the server
    synchronize = db.Column(db.Boolean, nullable=False, default=True)
    last_uid = db.Column(db.Integer, nullable=True)  # None until the first synchronization
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    account = db.relationship("Account", back_populates="folders")
    rules = db.relationship(
        "Rule", back_populates="folder", cascade="all, delete-orphan"
    )
    messages = db.relationship(
        "Message", back_populates="folder", cascade="all, delete-orphan"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "account_id": self.account_id,
            "name": self.name,
            "synchronize": self.synchronize,
            "last_uid": self.last_uid,
        }

    def __repr__(self):
        return f"<Folder {self.name}>"


class Message(db.Model):
    __tablename__ = "messages"

    id = db.Column(db.Integer, primary_key=True)
    folder_id = db.Column(
        db.Integer, db.ForeignKey("folders.id", ondelete="CASCADE"), nullable=False
    )
    uid = db.Column(db.Integer, nullable=False)
    message_id = db.Column(db.String(998), nullable=True)
    from_addresses = db.Column(db.Text, nullable=False, default="[]")  # JSON list of [personal, address]
    subject = db.Column(db.String(1000), nullable=True)
    seen = db.Column(db.Boolean, nullable=False, default=False)
    received_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    folder = db.relationship("Folder", back_populates="messages")
    operations = db.relationship(
        "Operation", back_populates="message", cascade="all, delete-orphan"
    )

    __table_args__ = (db.UniqueConstraint("folder_id", "uid", name="uq_messages_folder_uid"),)

    @property
    def senders(self):
        return [Address(personal, address) for personal, address in json.loads(self.from_addresses or "[]")]

    @senders.setter
    def senders(self, addresses):
        self.from_addresses = json.dumps([[personal, address] for personal, address in addresses])

    def to_dict(self):
        return {
            "id": self.id,
            "folder_id": self.folder_id,
            "uid": self.uid,
            "from": [list(a) for a in self.senders],
            "subject": self.subject,
            "seen": self.seen,
        }

    def __repr__(self):
        return f"<Message {self.id} uid={self.uid}>"


class Rule(db.Model):
    """Folder rule – evaluated in ascending `order`; `stop` ends the pass on a match."""

    __tablename__ = "rules"

    id = db.Column(db.Integer, primary_key=True)
    folder_id = db.Column(
        db.Integer, db.ForeignKey("folders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = db.Column(db.String(200), nullable=False)
    order = db.Column(db.Integer, nullable=False, default=0, index=True)
    enabled = db.Column(db.Boolean, nullable=False, default=True)
    stop = db.Column(db.Boolean, nullable=False, default=False)
    condition = db.Column(db.Text, nullable=False)  # JSON condition document
    action = db.Column(db.Text, nullable=False)  # JSON action document
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    folder = db.relationship("Folder", back_populates="rules")

    def same_content(self, other) -> bool:
        """Content equality, used to detect changed rules (not identity)."""
        if not isinstance(other, Rule):
            return False
        return (
            self.folder_id == other.folder_id
            and self.name == other.name
            and self.order == other.order
            and self.enabled == other.enabled
            and self.stop == other.stop
            and self.condition == other.condition
            and self.action == other.action
        )

    def to_dict(self):
        return {
            "id": self.id,
            "folder_id": self.folder_id,
            "name": self.name,
            "order": self.order,
            "enabled": self.enabled,
            "stop": self.stop,
            "condition": _load_document(self.condition),
            "action": _load_document(self.action),
        }

    def __repr__(self):
        return f"<Rule {self.name} @{self.order}>"


class Operation(db.Model):
    """Pending remote operation for a message, delivered by the worker."""

    __tablename__ = "operations"

    id = db.Column(db.Integer, primary_key=True)
    message_id = db.Column(
        db.Integer, db.ForeignKey("messages.id", ondelete="CASCADE"), nullable=False
    )
    name = db.Column(db.String(20), nullable=False)
    args = db.Column(db.Text, nullable=False, default="[]")  # JSON list
    attempts = db.Column(db.Integer, nullable=False, default=0)
    error = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    message = db.relationship("Message", back_populates="operations")

    @property
    def arguments(self):
        return json.loads(self.args or "[]")

    def __repr__(self):
        return f"<Operation {self.id} {self.name} {self.args}>"


class FailureLog(db.Model):
    """Records of failed synchronizations and operation deliveries (kept 30 days)."""

    __tablename__ = "failure_logs"

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(
        db.Integer, db.ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True
    )
    folder_name = db.Column(db.String(255), nullable=True)
    operation_name = db.Column(db.String(20), nullable=True)
    message_uid = db.Column(db.Integer, nullable=True)
    error_message = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    account = db.relationship("Account")

    def to_dict(self):
        return {
            "id": self.id,
            "account_id": self.account_id,
            "folder_name": self.folder_name,
            "operation_name": self.operation_name,
            "message_uid": self.message_uid,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<FailureLog {self.id} @ {self.created_at}>"


class WorkerState(db.Model):
    """Singleton row to control the worker daemon from the API."""

    __tablename__ = "worker_state"

    id = db.Column(db.Integer, primary_key=True, default=1)
    is_running = db.Column(db.Boolean, nullable=False, default=True)
    poll_interval = db.Column(db.Integer, nullable=False, default=60)
    updated_at = db.Column(db.DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)


class WorkerTrigger(db.Model):
    """Request to process an account's operation queue without waiting for the next cycle."""

    __tablename__ = "worker_triggers"

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(
        db.Integer, db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    requested_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    account = db.relationship("Account")

    def __repr__(self):
        return f"<WorkerTrigger account_id={self.account_id} @ {self.requested_at}>"

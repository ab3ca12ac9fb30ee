import json
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Optional

import pytest

from mailrules import create_app
from mailrules.config import Config
from mailrules.extensions import db as _db
from mailrules.models import Account, Folder, Message, Rule


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    POLL_INTERVAL = 60
    MAX_OPERATION_ATTEMPTS = 3


@dataclass
class FakeMessage:
    """Just the attributes the rule engine reads and writes."""

    id: int = 1
    senders: list = field(default_factory=list)
    subject: Optional[str] = None
    seen: bool = False


def make_rule(condition, action, *, id=1, name="rule", order=0, enabled=True, stop=False):
    """A rule stand-in; documents may be given as dicts or raw text."""
    return SimpleNamespace(
        id=id,
        name=name,
        order=order,
        enabled=enabled,
        stop=stop,
        condition=condition if isinstance(condition, str) else json.dumps(condition),
        action=action if isinstance(action, str) else json.dumps(action),
    )


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def account(db):
    account = Account(
        name="Work",
        imap_host="imap.example.com",
        imap_port=993,
        imap_user="me@example.com",
        imap_password="secret",
        ssl_mode="ssl",
    )
    db.session.add(account)
    db.session.commit()
    return account


@pytest.fixture
def folder(db, account):
    folder = Folder(account=account, name="INBOX", last_uid=0)
    db.session.add(folder)
    db.session.commit()
    return folder


@pytest.fixture
def archive(db, account):
    folder = Folder(account=account, name="Archive", synchronize=False)
    db.session.add(folder)
    db.session.commit()
    return folder


@pytest.fixture
def stored_message(db, folder):
    def factory(uid=1, subject="Hello", senders=(("Alice", "alice@example.com"),), seen=False):
        message = Message(folder=folder, uid=uid, subject=subject, seen=seen)
        message.senders = senders
        db.session.add(message)
        db.session.commit()
        return message

    return factory


@pytest.fixture
def stored_rule(db, folder):
    def factory(condition, action, *, name="rule", order=0, enabled=True, stop=False, target_folder=None):
        rule = Rule(
            folder=target_folder or folder,
            name=name,
            order=order,
            enabled=enabled,
            stop=stop,
            condition=json.dumps(condition),
            action=json.dumps(action),
        )
        db.session.add(rule)
        db.session.commit()
        return rule

    return factory

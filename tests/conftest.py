"""
Shared test fixtures and helpers for the AquilaMail test suite.
"""

import pytest
from jinja2 import DictLoader

from aquilamail.attachments import AttachmentParserRegistry
from aquilamail.builder import EmailBuilder
from aquilamail.events import EventManager
from aquilamail.renderers import JinjaMailRenderer
from aquilamail.service import MailService, set_mail_service
from aquilamail.testing import InMemoryTransport, clear_outbox, get_outbox


TEMPLATES = {
    "welcome.html": "<p>Hello {{ name }}!</p>",
    "plain.txt": "Hello {{ name }}",
    "layout.html": "<html><body>{{ content }}</body></html>",
}

EMAILS = {
    "base": {
        "from_address": "noreply@example.com",
        "from_name": "Example",
    },
    "welcome": {
        "extends": "base",
        "subject": "Welcome!",
        "template": "welcome.html",
    },
}


@pytest.fixture
def mail_outbox():
    """
    Clear the mail outbox before the test and return it.

    Use ``assert len(mail_outbox) == 1`` to verify mail was sent.
    """
    clear_outbox()
    yield get_outbox()
    clear_outbox()


@pytest.fixture
def transport():
    return InMemoryTransport()


@pytest.fixture
def renderer():
    return JinjaMailRenderer(loader=DictLoader(TEMPLATES))


@pytest.fixture
def make_service(transport, renderer, mail_outbox):
    """
    Factory fixture — build a MailService over in-memory collaborators.

    Usage::

        def test_something(make_service):
            service = make_service(transport=my_transport)
    """
    def factory(**overrides):
        kwargs = {
            "transport": transport,
            "renderer": renderer,
            "email_builder": EmailBuilder(EMAILS),
            "attachment_parsers": AttachmentParserRegistry(),
            "events": EventManager(),
        }
        kwargs.update(overrides)
        return MailService(**kwargs)

    yield factory
    set_mail_service(None)


@pytest.fixture
def service(make_service):
    return make_service()

"""
Builds the transport ``Message`` envelope out of an ``Email``.

Only the envelope is populated here (sender, recipients, subject, encoding);
``MailService`` assigns the body, attachments and custom headers.
"""

from __future__ import annotations

from .mime import Message
from .model import Email


def create_message_from_email(email: Email) -> Message:
    message = Message()
    message.encoding = email.charset
    message.subject = email.subject

    if email.from_address:
        message.set_from(email.from_address, email.from_name)
    if email.reply_to:
        message.add_reply_to(email.reply_to, email.reply_to_name)

    for address in email.to:
        message.add_to(address)
    for address in email.cc:
        message.add_cc(address)
    for address in email.bcc:
        message.add_bcc(address)

    return message

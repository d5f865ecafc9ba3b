"""
Tests for the AquilaMail send pipeline.

Covers:
    - Email resolution: Email, preset name, mapping, invalid input
    - Rendering: no-op without template, layout injection, render errors
    - PRE_SEND cancellation
    - Assembly: body classification, attachment ordering, custom headers
    - Failure path: SEND_ERROR + MailException chaining
    - POST_SEND on success
    - Listeners, send_sync, singleton helpers, close()
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest


# ═══════════════════════════════════════════════════════════════════
# RESOLUTION
# ═══════════════════════════════════════════════════════════════════

class TestEmailResolution:

    @pytest.mark.asyncio
    async def test_email_instance_used_as_is(self, service):
        from aquilamail.model import Email
        email = Email(from_address="a@test.com", to=["b@test.com"], body="Hi")
        result = await service.send(email)
        assert result.email is email
        assert result.is_valid is True

    @pytest.mark.asyncio
    async def test_preset_name_resolved_through_builder(self, service, transport):
        result = await service.send("welcome", {"to": ["u@test.com"], "template_params": {"name": "Asha"}})
        assert result.is_valid
        assert result.email.subject == "Welcome!"
        assert result.email.from_address == "noreply@example.com"
        message = transport.messages[0]
        assert message.to == [("u@test.com", None)]
        assert message.from_name == "Example"

    @pytest.mark.asyncio
    async def test_mapping_built_into_email(self, service, transport):
        result = await service.send({"from_address": "a@test.com", "to": "b@test.com", "subject": "S"})
        assert result.email.to == ["b@test.com"]
        assert transport.messages[0].subject == "S"

    @pytest.mark.asyncio
    async def test_invalid_type_raises_invalid_argument(self, service, transport):
        from aquilamail.faults import InvalidArgumentFault
        with pytest.raises(InvalidArgumentFault) as exc_info:
            await service.send(42)
        assert 'Expected one of ["str", "dict", "Email"], but "int" was provided' in exc_info.value.message
        assert transport.messages == []

    @pytest.mark.asyncio
    async def test_unknown_preset_propagates_raw(self, service):
        from aquilamail.faults import EmailNotFoundFault
        with pytest.raises(EmailNotFoundFault):
            await service.send("does-not-exist")

    @pytest.mark.asyncio
    async def test_resolution_error_fires_no_events(self, service):
        from aquilamail.events import MailEventName
        seen = []
        for name in MailEventName:
            service.events.attach(name, seen.append)
        with pytest.raises(Exception):
            await service.send("does-not-exist")
        assert seen == []


# ═══════════════════════════════════════════════════════════════════
# RENDERING
# ═══════════════════════════════════════════════════════════════════

class TestRendering:

    @pytest.mark.asyncio
    async def test_body_unchanged_without_template(self, make_service):
        from aquilamail.model import Email
        renderer = MagicMock()
        service = make_service(renderer=renderer)
        email = Email(to=["b@test.com"], body="Plain body")
        await service.send(email)
        assert email.body == "Plain body"
        renderer.render.assert_not_called()

    @pytest.mark.asyncio
    async def test_layout_false_injected_when_absent(self, make_service):
        from aquilamail.model import Email
        renderer = MagicMock()
        renderer.render.return_value = "rendered"
        service = make_service(renderer=renderer)
        email = Email(to=["b@test.com"], template="t.html", template_params={"name": "Asha"})
        await service.send(email)
        renderer.render.assert_called_once_with("t.html", {"name": "Asha", "layout": False})
        assert email.body == "rendered"
        # The email's own params are not modified
        assert email.template_params == {"name": "Asha"}

    @pytest.mark.asyncio
    async def test_explicit_layout_passed_through(self, make_service):
        from aquilamail.model import Email
        renderer = MagicMock()
        renderer.render.return_value = "rendered"
        service = make_service(renderer=renderer)
        email = Email(to=["b@test.com"], template="t.html", template_params={"layout": "base.html"})
        await service.send(email)
        renderer.render.assert_called_once_with("t.html", {"layout": "base.html"})

    @pytest.mark.asyncio
    async def test_async_renderer_is_awaited(self, make_service):
        from aquilamail.model import Email
        renderer = MagicMock()
        renderer.render = AsyncMock(return_value="async body")
        service = make_service(renderer=renderer)
        email = Email(to=["b@test.com"], template="t.html")
        await service.send(email)
        assert email.body == "async body"

    @pytest.mark.asyncio
    async def test_jinja_template_with_layout(self, service, transport):
        from aquilamail.model import Email
        email = Email(
            to=["b@test.com"],
            template="welcome.html",
            template_params={"name": "Asha", "layout": "layout.html"},
        )
        await service.send(email)
        assert email.body == "<html><body><p>Hello Asha!</p></body></html>"
        assert transport.messages[0].body.parts[0].type == "text/html"

    @pytest.mark.asyncio
    async def test_render_error_propagates_without_send_error(self, service, transport):
        from aquilamail.events import MailEventName
        from aquilamail.faults import MailTemplateFault
        from aquilamail.model import Email
        errors = []
        service.events.attach(MailEventName.SEND_ERROR, errors.append)
        with pytest.raises(MailTemplateFault):
            await service.send(Email(to=["b@test.com"], template="missing.html"))
        assert errors == []
        assert transport.messages == []


# ═══════════════════════════════════════════════════════════════════
# PRE_SEND CANCELLATION
# ═══════════════════════════════════════════════════════════════════

class TestCancellation:

    @pytest.mark.asyncio
    async def test_false_from_pre_send_cancels(self, service, transport):
        from aquilamail.events import MailEventName
        from aquilamail.model import Email
        service.events.attach(MailEventName.PRE_SEND, lambda e: None)
        service.events.attach(MailEventName.PRE_SEND, lambda e: False)
        result = await service.send(Email(to=["b@test.com"], body="x"))
        assert result.is_valid is False
        assert result.exception is None
        assert result.is_cancelled is True
        assert transport.messages == []

    @pytest.mark.asyncio
    async def test_falsy_values_do_not_cancel(self, service, transport):
        from aquilamail.events import MailEventName
        from aquilamail.model import Email
        for value in (0, "", None, []):
            service.events.attach(MailEventName.PRE_SEND, lambda e, v=value: v)
        result = await service.send(Email(to=["b@test.com"], body="x"))
        assert result.is_valid is True
        assert len(transport.messages) == 1

    @pytest.mark.asyncio
    async def test_cancel_fires_no_post_send(self, service):
        from aquilamail.events import MailEventName
        from aquilamail.model import Email
        post = []
        service.events.attach(MailEventName.PRE_SEND, lambda e: False)
        service.events.attach(MailEventName.POST_SEND, post.append)
        await service.send(Email(to=["b@test.com"]))
        assert post == []

    @pytest.mark.asyncio
    async def test_pre_render_listener_can_mutate_email(self, service, transport):
        from aquilamail.events import MailEventName
        from aquilamail.model import Email

        def add_subject(event):
            event.email.subject = "Changed"

        service.events.attach(MailEventName.PRE_RENDER, add_subject)
        await service.send(Email(to=["b@test.com"], subject="Original"))
        assert transport.messages[0].subject == "Changed"


# ═══════════════════════════════════════════════════════════════════
# ASSEMBLY
# ═══════════════════════════════════════════════════════════════════

class TestAssembly:

    @pytest.mark.asyncio
    async def test_plain_text_body_classified_as_text(self, service, transport):
        from aquilamail.model import Email
        await service.send(Email(to=["b@test.com"], body="Just text", charset="iso-8859-1"))
        part = transport.messages[0].body.parts[0]
        assert part.type == "text/plain"
        assert part.charset == "iso-8859-1"
        assert transport.messages[0].encoding == "iso-8859-1"

    @pytest.mark.asyncio
    async def test_markup_body_classified_as_html(self, service, transport):
        from aquilamail.model import Email
        await service.send(Email(to=["b@test.com"], body="<b>Bold</b> text"))
        assert transport.messages[0].body.parts[0].type == "text/html"

    @pytest.mark.asyncio
    async def test_mime_part_body_is_wrapped(self, service, transport):
        from aquilamail.mime import MimePart
        from aquilamail.model import Email
        part = MimePart(content="calendar", type="text/calendar")
        await service.send(Email(to=["b@test.com"], body=part))
        parts = transport.messages[0].body.parts
        assert len(parts) == 1
        assert parts[0].content == "calendar"
        assert parts[0].type == "text/calendar"
        assert parts[0].charset == "utf-8"
        # The caller's part is left as it was
        assert part.charset is None

    @pytest.mark.asyncio
    async def test_attachment_parts_follow_body_parts(self, service, transport):
        from aquilamail.mime import MimeBody, MimePart
        from aquilamail.model import Email
        a = MimePart(content="A", type="text/plain")
        b = MimePart(content="<p>B</p>", type="text/html")
        c = MimePart(content=b"C", filename="c.bin")
        d = MimePart(content=b"D", filename="d.bin")
        email = Email(to=["b@test.com"], body=MimeBody([a, b]), attachments=[c, d])
        await service.send(email)
        parts = transport.messages[0].body.parts
        assert [p.content for p in parts] == ["A", "<p>B</p>", b"C", b"D"]
        assert parts[0] is a and parts[1] is b
        assert len(parts) == 4
        # The email's own body is not extended
        assert len(email.body) == 2

    @pytest.mark.asyncio
    async def test_attachment_charset_set_from_email(self, service, transport):
        from aquilamail.mime import MimePart
        from aquilamail.model import Email
        part = MimePart(content=b"x", filename="x.bin")
        await service.send(Email(to=["b@test.com"], charset="utf-16", attachments=[part]))
        assert transport.messages[0].body.parts[1].charset == "utf-16"
        assert part.charset is None

    @pytest.mark.asyncio
    async def test_file_attachment_with_explicit_name(self, service, transport, tmp_path):
        from aquilamail.model import Email
        path = tmp_path / "report-2026.txt"
        path.write_text("numbers")
        email = Email(to=["b@test.com"])
        email.add_attachment(str(path), name="report.txt")
        email.add_attachment(path)
        await service.send(email)
        attachments = transport.messages[0].body.parts[1:]
        assert [p.filename for p in attachments] == ["report.txt", "report-2026.txt"]
        assert attachments[0].raw_content() == b"numbers"

    @pytest.mark.asyncio
    async def test_tagged_attachment_mapping(self, service, transport):
        from aquilamail.model import Email
        email = Email(
            to=["b@test.com"],
            attachments={"data.csv": {"parser_name": "bytes", "value": b"a,b"}},
        )
        await service.send(email)
        part = transport.messages[0].body.parts[1]
        assert part.filename == "data.csv"
        assert part.type == "text/csv"

    @pytest.mark.asyncio
    async def test_attachments_dir_appended(self, service, transport, tmp_path):
        from aquilamail.model import Email
        (tmp_path / "b.txt").write_text("b")
        (tmp_path / "a.txt").write_text("a")
        email = Email(to=["b@test.com"], attachments_dir={"path": str(tmp_path)})
        await service.send(email)
        assert [p.filename for p in transport.messages[0].body.parts[1:]] == ["a.txt", "b.txt"]

    @pytest.mark.asyncio
    async def test_custom_headers_one_line_per_value(self, service, transport):
        from aquilamail.model import Email
        email = Email(to=["b@test.com"], custom_headers={"X-Tag": ["one", "two"], "X-Campaign": "spring"})
        await service.send(email)
        headers = transport.messages[0].headers
        assert headers.get_all("X-Tag") == ["one", "two"]
        assert headers.get("X-Campaign") == "spring"

    @pytest.mark.asyncio
    async def test_envelope_copied_to_message(self, service, transport):
        from aquilamail.model import Email
        email = Email(
            from_address="a@test.com", from_name="Alice",
            reply_to="r@test.com", reply_to_name="Replies",
            to=["t@test.com"], cc=["c@test.com"], bcc=["h@test.com"], subject="Hi",
        )
        await service.send(email)
        message = transport.messages[0]
        assert (message.from_address, message.from_name) == ("a@test.com", "Alice")
        assert message.reply_to == [("r@test.com", "Replies")]
        assert message.cc == [("c@test.com", None)]
        assert message.bcc == [("h@test.com", None)]
        assert "h@test.com" not in message.to_string()


# ═══════════════════════════════════════════════════════════════════
# FAILURE & SUCCESS EVENTS
# ═══════════════════════════════════════════════════════════════════

class TestSendOutcome:

    @pytest.mark.asyncio
    async def test_transport_error_wrapped_in_mail_exception(self, make_service):
        from aquilamail.events import MailEventName
        from aquilamail.faults import MailException
        from aquilamail.model import Email
        from aquilamail.testing import InMemoryTransport
        boom = RuntimeError("boom")
        service = make_service(transport=InMemoryTransport(fail_with=boom))
        errors = []
        service.events.attach(MailEventName.SEND_ERROR, errors.append)

        with pytest.raises(MailException) as exc_info:
            await service.send(Email(to=["b@test.com"]))

        assert exc_info.value.cause is boom
        assert exc_info.value.__cause__ is boom
        assert exc_info.value.code == "MAIL_SEND_ERROR"
        assert len(errors) == 1
        result = errors[0].result
        assert result.is_valid is False
        assert result.exception is boom
        assert result.is_failed is True

    @pytest.mark.asyncio
    async def test_send_error_published_before_exception(self, make_service):
        from aquilamail.events import MailEventName
        from aquilamail.faults import MailException
        from aquilamail.model import Email
        from aquilamail.testing import FailingTransport
        service = make_service(transport=FailingTransport())
        order = []
        service.events.attach(MailEventName.SEND_ERROR, lambda e: order.append("event"))
        try:
            await service.send(Email(to=["b@test.com"]))
        except MailException:
            order.append("raised")
        assert order == ["event", "raised"]

    @pytest.mark.asyncio
    async def test_missing_parser_reported_as_send_error(self, service, transport):
        from aquilamail.events import MailEventName
        from aquilamail.faults import MailException, ServiceNotCreatedFault
        from aquilamail.model import Attachment, Email
        errors = []
        service.events.attach(MailEventName.SEND_ERROR, errors.append)
        email = Email(to=["b@test.com"], attachments=[Attachment("pdf", b"%PDF")])
        with pytest.raises(MailException) as exc_info:
            await service.send(email)
        assert isinstance(exc_info.value.cause, ServiceNotCreatedFault)
        assert 'The attachment parser "pdf" could not be found' in exc_info.value.cause.message
        assert len(errors) == 1
        assert transport.messages == []

    @pytest.mark.asyncio
    async def test_invalid_attachment_reported_as_send_error(self, service, tmp_path):
        from aquilamail.faults import InvalidAttachmentFault, MailException
        from aquilamail.model import Email
        email = Email(to=["b@test.com"], attachments=[str(tmp_path / "missing.pdf")])
        with pytest.raises(MailException) as exc_info:
            await service.send(email)
        assert isinstance(exc_info.value.cause, InvalidAttachmentFault)

    @pytest.mark.asyncio
    async def test_post_send_published_once_on_success(self, service):
        from aquilamail.events import MailEventName
        from aquilamail.model import Email
        events = []
        service.events.attach(MailEventName.POST_SEND, events.append)
        result = await service.send(Email(to=["b@test.com"]))
        assert len(events) == 1
        assert events[0].result is result
        assert events[0].result.is_valid is True
        assert events[0].result.exception is None
        assert events[0].target is service

    @pytest.mark.asyncio
    async def test_post_send_listener_error_wrapped_in_mail_exception(self, service, transport):
        from aquilamail.events import MailEventName
        from aquilamail.faults import MailException
        from aquilamail.model import Email
        failure = RuntimeError("listener failed")
        errors = []

        def broken(event):
            raise failure

        service.events.attach(MailEventName.POST_SEND, broken)
        service.events.attach(MailEventName.SEND_ERROR, errors.append)

        with pytest.raises(MailException) as exc_info:
            await service.send(Email(to=["b@test.com"]))

        assert exc_info.value.cause is failure
        assert exc_info.value.__cause__ is failure
        assert len(transport.messages) == 1
        assert len(errors) == 1
        assert errors[0].result.exception is failure

    @pytest.mark.asyncio
    async def test_events_fire_in_pipeline_order(self, service):
        from aquilamail.events import MailEventName
        from aquilamail.model import Email
        order = []
        for name in MailEventName:
            service.events.attach(name, lambda e: order.append(e.name))
        await service.send(Email(to=["b@test.com"]))
        assert order == [MailEventName.PRE_RENDER, MailEventName.PRE_SEND, MailEventName.POST_SEND]

    @pytest.mark.asyncio
    async def test_sync_transport_supported(self, make_service):
        from aquilamail.model import Email
        transport = MagicMock()
        transport.send.return_value = "id-1"
        service = make_service(transport=transport)
        result = await service.send(Email(to=["b@test.com"]))
        assert result.is_valid
        transport.send.assert_called_once()


# ═══════════════════════════════════════════════════════════════════
# LISTENERS & HELPERS
# ═══════════════════════════════════════════════════════════════════

class TestServiceListeners:

    @pytest.mark.asyncio
    async def test_listener_object_can_cancel(self, service, transport):
        from aquilamail.events import AbstractMailListener
        from aquilamail.model import Email

        class Blocker(AbstractMailListener):
            def on_pre_send(self, event):
                return False

        blocker = Blocker()
        service.attach_mail_listener(blocker)
        result = await service.send(Email(to=["b@test.com"]))
        assert result.is_cancelled

        service.detach_mail_listener(blocker)
        result = await service.send(Email(to=["b@test.com"]))
        assert result.is_valid
        assert len(transport.messages) == 1

    @pytest.mark.asyncio
    async def test_logging_listener_logs_success(self, service, caplog):
        import logging
        from aquilamail.listeners import LoggingMailListener
        from aquilamail.model import Email
        service.attach_mail_listener(LoggingMailListener())
        with caplog.at_level(logging.INFO, logger="aquilamail.listeners"):
            await service.send(Email(to=["b@test.com"], subject="Logged"))
        assert any("Mail sent" in r.message and "Logged" in r.message for r in caplog.records)


class TestServiceHelpers:

    def test_send_sync(self, service, transport):
        from aquilamail.model import Email
        result = service.send_sync(Email(to=["b@test.com"], body="sync"))
        assert result.is_valid
        assert len(transport.messages) == 1

    def test_get_mail_service_without_service_raises(self):
        from aquilamail.faults import MailConfigFault
        from aquilamail.service import get_mail_service, set_mail_service
        set_mail_service(None)
        with pytest.raises(MailConfigFault):
            get_mail_service()

    def test_send_mail_uses_singleton(self, service, mail_outbox):
        from aquilamail.service import send_mail, set_mail_service
        set_mail_service(service)
        result = send_mail("welcome", {"to": ["u@test.com"], "template_params": {"name": "Bo"}})
        assert result.is_valid
        assert len(mail_outbox) == 1
        assert mail_outbox[0].subject == "Welcome!"
        assert "Hello Bo!" in mail_outbox[0].html_body

    @pytest.mark.asyncio
    async def test_asend_mail_uses_singleton(self, service, mail_outbox):
        from aquilamail.service import asend_mail, set_mail_service
        set_mail_service(service)
        await asend_mail({"to": ["u@test.com"], "subject": "Async"})
        assert mail_outbox[0].subject == "Async"

    @pytest.mark.asyncio
    async def test_close_shuts_transport_down(self, service, transport):
        await service.close()
        assert transport.closed is True

    @pytest.mark.asyncio
    async def test_close_without_shutdown_is_noop(self, make_service):
        transport = MagicMock(spec=["send"])
        service = make_service(transport=transport)
        await service.close()

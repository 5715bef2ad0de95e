from io import StringIO

import pytest
from django.core.management import call_command

from bookings.models import BookingStatus, DispatchKind, DispatchStatus, EmailDispatch
from bookings.reconciliation import enqueue_email


def run(*args):
    out = StringIO()
    call_command("send_pending_emails", *args, stdout=out)
    return out.getvalue()


@pytest.mark.django_db
class TestSendPendingEmails:

    def test_nothing_to_send(self):
        assert "No pending emails." in run()

    def test_sends_pending(self, booking, patched_email_client):
        dispatch = enqueue_email(booking, DispatchKind.CONFIRMATION, "maria@example.com", BookingStatus.PAID)

        assert "Sent 1 of 1 emails" in run()
        dispatch.refresh_from_db()
        assert dispatch.status == DispatchStatus.SENT

    def test_reports_failures(self, booking, patched_email_client, http_response):
        patched_email_client.session.post.return_value = http_response(500, {"message": "Internal error"})
        enqueue_email(booking, DispatchKind.CONFIRMATION, "maria@example.com", BookingStatus.PAID)

        output = run("--limit", "10")

        assert "Sent 0 of 1 emails" in output
        assert "1 emails failed" in output
        assert EmailDispatch.objects.get().last_error == "Internal error"

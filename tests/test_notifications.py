import logging

from travelai.notifications import ExportNotice, LoggingNotificationSink


def test_logging_sink_never_logs_download_token(caplog):
    notice = ExportNotice("ann", "ann@example.com", "/api/v1/settings/export/SECRET-TOKEN", "job-1")
    sink = LoggingNotificationSink()
    with caplog.at_level(logging.INFO, logger="travelai.notifications"):
        sink.export_ready(notice)
        sink.export_ready(notice)
    text = " ".join(rec.getMessage() for rec in caplog.records)
    assert "job-1" in text
    assert "SECRET-TOKEN" not in text
    assert not hasattr(sink, "outbox")

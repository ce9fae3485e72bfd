"""
Tests for alert and digest rendering.
"""

from alerting.alerts.templates import SafeDict, render_alert, render_digest


class TestRenderAlert:
    """Tests for render_alert."""

    def test_status_change_subject(self):
        subject, body, html_body = render_alert(
            "status_change", "info",
            {"bot_name": "grid", "old_status": "running", "new_status": "stopped"},
        )
        assert subject == "grid: status changed to stopped"
        assert "New status: stopped" in body
        assert "<h2>Bot Status Changed</h2>" in html_body

    def test_severity_prefix(self):
        subject, body, _ = render_alert(
            "status_change", "critical",
            {"bot_name": "grid", "old_status": "running", "new_status": "error"},
        )
        assert subject.startswith("[CRITICAL] ")
        assert "Immediate attention required." in body

    def test_trade_closed_formats_numbers(self):
        subject, _, _ = render_alert(
            "trade_closed", "info",
            {"bot_name": "grid", "pair": "BTC/USDT", "profit_percent": 2.5,
             "profit_abs": 12.0, "stake_currency": "USDT"},
        )
        assert subject == "grid: closed BTC/USDT (+2.50%, +12.00 USDT)"

    def test_backtest_win_rate_percent(self):
        subject, _, _ = render_alert(
            "backtest_completed", "info", {"strategy_name": "Momentum", "win_rate": 0.625}
        )
        assert subject == "Backtest completed: Momentum (62.5% win rate)"

    def test_bot_id_used_when_name_missing(self):
        subject, _, _ = render_alert("connection_issue", "warning", {"bot_id": "bot-7"})
        assert subject == "[WARNING] bot-7: connection issue detected"

    def test_empty_fields_are_dropped(self):
        _, body, _ = render_alert(
            "status_change", "info",
            {"bot_name": "grid", "old_status": "running", "new_status": "error",
             "error_message": ""},
        )
        assert "Error:" not in body

    def test_html_is_escaped(self):
        _, _, html_body = render_alert(
            "status_change", "info",
            {"bot_name": "<b>x</b>", "old_status": "a", "new_status": "b"},
        )
        assert "<b>x</b>" not in html_body
        assert "&lt;b&gt;x&lt;/b&gt;" in html_body

    def test_unknown_trigger_uses_fallback(self):
        subject, _, _ = render_alert("price_spike", "info", {})
        assert subject == "Alert: price_spike"


class TestRenderDigest:
    """Tests for render_digest."""

    def test_digest_lists_every_entry(self):
        subject, body, html_body = render_digest(
            [("warning", "bot stopped"), ("info", "trade closed")]
        )
        assert subject == "Alert Digest: 2 alerts"
        assert body == "Alert Digest:\n\n- [warning] bot stopped\n- [info] trade closed\n"
        assert html_body.count("<li>") == 2


class TestSafeDict:
    def test_missing_key_kept_as_placeholder(self):
        assert "{pair} closed".format_map(SafeDict({})) == "{pair} closed"

"""
Message templates for alerts and digests.

Templates are plain format strings filled from the event's template data.
Unknown placeholders are left as-is. The severity only changes the subject
prefix and the opening line, so one template per trigger type is enough.
"""

import html
from dataclasses import dataclass, field
from typing import Any

from alerting.alerts.enums import Severity, TriggerType


class SafeDict(dict):
    """Dict subclass that returns placeholder for missing keys."""

    def __missing__(self, key: str) -> str:
        return f"{{{key}}}"


def _format(template: str, data: dict[str, Any]) -> str:
    """
    Format a template with event values.

    Falls back to the raw template when a format spec does not fit the
    value (for example a numeric spec applied to a missing placeholder).
    """
    try:
        return template.format_map(SafeDict(data))
    except (ValueError, IndexError, AttributeError):
        return template


@dataclass
class AlertTemplate:
    title: str
    subject: str
    intro: str
    fields: list[tuple[str, str]] = field(default_factory=list)


TEMPLATES: dict[TriggerType, AlertTemplate] = {
    TriggerType.STATUS_CHANGE: AlertTemplate(
        title="Bot Status Changed",
        subject="{bot_name}: status changed to {new_status}",
        intro="Bot {bot_name} changed status from {old_status} to {new_status}.",
        fields=[
            ("Bot", "{bot_name}"),
            ("Previous status", "{old_status}"),
            ("New status", "{new_status}"),
            ("Error", "{error_message}"),
        ],
    ),
    TriggerType.TRADE_OPENED: AlertTemplate(
        title="Trade Opened",
        subject="{bot_name}: opened {pair}",
        intro="Bot {bot_name} opened a trade on {pair}.",
        fields=[("Pair", "{pair}"), ("Open rate", "{open_rate}")],
    ),
    TriggerType.TRADE_CLOSED: AlertTemplate(
        title="Trade Closed",
        subject="{bot_name}: closed {pair} ({profit_percent:+.2f}%, {profit_abs:+.2f} {stake_currency})",
        intro="Bot {bot_name} closed a trade on {pair}.",
        fields=[
            ("Pair", "{pair}"),
            ("Profit", "{profit_percent:+.2f}%"),
            ("Profit (abs)", "{profit_abs:+.2f} {stake_currency}"),
            ("Exit reason", "{exit_reason}"),
        ],
    ),
    TriggerType.LARGE_PROFIT_LOSS: AlertTemplate(
        title="Large Profit/Loss",
        subject="Large profit/loss on {pair}: {profit_percent:+.2f}%",
        intro="Bot {bot_name} closed {pair} with a large result.",
        fields=[
            ("Pair", "{pair}"),
            ("Profit", "{profit_percent:+.2f}%"),
            ("Profit (abs)", "{profit_abs:+.2f} {stake_currency}"),
        ],
    ),
    TriggerType.DAILY_LOSS_LIMIT: AlertTemplate(
        title="Daily Loss Limit",
        subject="{bot_name}: daily profit at {daily_profit_percent:+.2f}%",
        intro="Bot {bot_name} crossed its daily loss limit.",
        fields=[("Daily profit", "{daily_profit_percent:+.2f}%")],
    ),
    TriggerType.DRAWDOWN_THRESHOLD: AlertTemplate(
        title="Drawdown Threshold",
        subject="{bot_name}: drawdown at {drawdown_percent:.2f}%",
        intro="Bot {bot_name} exceeded its drawdown threshold.",
        fields=[("Drawdown", "{drawdown_percent:.2f}%")],
    ),
    TriggerType.PROFIT_TARGET: AlertTemplate(
        title="Profit Target Reached",
        subject="{bot_name}: profit target reached ({cumulative_profit_percent:+.2f}%)",
        intro="Bot {bot_name} reached its profit target.",
        fields=[("Cumulative profit", "{cumulative_profit_percent:+.2f}%")],
    ),
    TriggerType.CONNECTION_ISSUE: AlertTemplate(
        title="Connection Issue",
        subject="{bot_name}: connection issue detected",
        intro="The monitor could not reach bot {bot_name}.",
        fields=[("Error", "{error_message}"), ("Retries", "{retry_count}")],
    ),
    TriggerType.BACKTEST_COMPLETED: AlertTemplate(
        title="Backtest Completed",
        subject="Backtest completed: {strategy_name} ({win_rate_percent:.1f}% win rate)",
        intro="The backtest of {strategy_name} finished.",
        fields=[
            ("Strategy", "{strategy_name}"),
            ("Trades", "{total_trades}"),
            ("Win rate", "{win_rate_percent:.1f}%"),
            ("Total profit", "{profit_total_percent:+.2f}%"),
        ],
    ),
    TriggerType.BACKTEST_FAILED: AlertTemplate(
        title="Backtest Failed",
        subject="Backtest failed: {strategy_name}",
        intro="The backtest of {strategy_name} failed.",
        fields=[("Strategy", "{strategy_name}"), ("Error", "{error_message}")],
    ),
}

FALLBACK_TEMPLATE = AlertTemplate(
    title="Alert",
    subject="Alert: {trigger_type}",
    intro="An alert rule matched.",
)

SEVERITY_PREFIX = {
    Severity.CRITICAL: "[CRITICAL] ",
    Severity.WARNING: "[WARNING] ",
    Severity.INFO: "",
}

SEVERITY_OUTRO = {
    Severity.CRITICAL: "Immediate attention required.",
    Severity.WARNING: "Please review when convenient.",
    Severity.INFO: "",
}


def _enrich(trigger_label: str, data: dict[str, Any]) -> dict[str, Any]:
    data = dict(data)
    data.setdefault("trigger_type", trigger_label)
    if "win_rate" in data and isinstance(data["win_rate"], (int, float)):
        data["win_rate_percent"] = data["win_rate"] * 100
    if not data.get("bot_name") and data.get("bot_id"):
        data["bot_name"] = data["bot_id"]
    if not data.get("strategy_name") and data.get("strategy_id"):
        data["strategy_name"] = data["strategy_id"]
    return data


def render_alert(
    trigger_type: TriggerType | str,
    severity: Severity | str,
    data: dict[str, Any],
) -> tuple[str, str, str]:
    """
    Render an alert from the template for (trigger type, severity).

    Args:
        trigger_type: Rule trigger type
        severity: Rule severity
        data: Event template data

    Returns:
        (subject, plain text body, HTML body)
    """
    trigger_label = str(getattr(trigger_type, "value", trigger_type))
    try:
        template = TEMPLATES[TriggerType(trigger_label)]
    except (ValueError, KeyError):
        template = FALLBACK_TEMPLATE
    severity = Severity(severity)
    values = _enrich(trigger_label, data)

    subject = SEVERITY_PREFIX[severity] + _format(template.subject, values)
    intro = _format(template.intro, values)
    rows = [
        (label, _format(value, values))
        for label, value in template.fields
    ]
    # Drop rows whose value is empty or left unfilled
    rows = [
        (label, value) for label, value in rows
        if value not in ("", "None") and not value.startswith("{")
    ]
    outro = SEVERITY_OUTRO[severity]

    body_lines = [intro, ""]
    body_lines += [f"{label}: {value}" for label, value in rows]
    if outro:
        body_lines += ["", outro]
    body = "\n".join(body_lines).strip() + "\n"

    html_rows = "".join(
        f"<tr><td><strong>{html.escape(label)}</strong></td>"
        f"<td>{html.escape(value)}</td></tr>"
        for label, value in rows
    )
    html_body = (
        f"<h2>{html.escape(template.title)}</h2>"
        f"<p>{html.escape(intro)}</p>"
        + (f"<table>{html_rows}</table>" if html_rows else "")
        + (f"<p><em>{html.escape(outro)}</em></p>" if outro else "")
    )
    return subject, body, html_body


def render_digest(entries: list[tuple[str, str]]) -> tuple[str, str, str]:
    """
    Render a digest of several alerts.

    Args:
        entries: (severity, subject) per queued alert, in arrival order

    Returns:
        (subject, plain text body, HTML body)
    """
    subject = f"Alert Digest: {len(entries)} alerts"
    body = "Alert Digest:\n\n" + "".join(
        f"- [{severity}] {line}\n" for severity, line in entries
    )
    items = "".join(
        f"<li><strong>[{html.escape(severity)}]</strong> {html.escape(line)}</li>"
        for severity, line in entries
    )
    html_body = f"<h2>Alert Digest</h2><ul>{items}</ul>"
    return subject, body, html_body

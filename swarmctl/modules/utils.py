import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Union

import requests

from swarmctl.config import Config
from swarmctl.modules.swarm.models import BootstrapReport, JoinStatus

logger = logging.getLogger("swarmctl")

STATUS_ICONS = {
    'done': '✅',
    'already_done': '✅',
    'joined': '✅',
    'already_joined': '✅',
    'failed': '❌',
}


def redact_sensitive_data(data: Any) -> Any:
    """Recursively redact sensitive data from dictionaries and lists.

    Args:
        data: Input data that might contain sensitive information

    Returns:
        Data with sensitive values redacted
    """
    if isinstance(data, dict):
        return {
            k: "[REDACTED]" if v is not None and any(
                redact_key.lower() in str(k).lower()
                for redact_key in Config.REDACT_KEYS
            ) else redact_sensitive_data(v)
            for k, v in data.items()
        }
    elif isinstance(data, (list, tuple)):
        return [redact_sensitive_data(item) for item in data]
    return data


def render_report(report: BootstrapReport) -> List[str]:
    """Human readable lines describing a bootstrap run."""
    lines = ["", "--- Bootstrap Summary ---"]

    lines.append("Runtime install:")
    for result in report.installs.values():
        icon = STATUS_ICONS.get(result.status.value, '•')
        detail = f" ({result.reason})" if result.reason else ""
        lines.append(f"  {icon} {result.host.identity} [{result.host.address}] {result.status.value}{detail}")

    if report.leader is not None:
        icon = STATUS_ICONS.get(report.leader.status.value, '•')
        state = {
            'done': 'initialized',
            'already_done': 'already initialized',
        }.get(report.leader.status.value, report.leader.status.value)
        lines.append(f"Leader: {icon} {report.leader.host.identity} [{report.leader.host.address}] {state}")

    if report.join_report is not None:
        lines.append("Joins:")
        for result in report.join_report.results:
            icon = STATUS_ICONS.get(result.status.value, '•')
            credential = result.credential_class.value if result.credential_class else '-'
            line = (f"  {icon} {result.host.identity} [{result.host.address}] "
                    f"{result.status.value} ({credential} token)")
            if result.status == JoinStatus.FAILED:
                line += f" step={result.step}: {result.reason}"
            lines.append(line)

    if report.fatal_error is not None:
        lines.append(f"Fatal: ❌ {type(report.fatal_error).__name__}: {report.fatal_error}")

    lines.append(f"Exit status: {report.exit_code} ({report.duration:.1f}s)")
    lines.append("-------------------------")
    return lines


def export_report_to_json(report: Union[BootstrapReport, Dict[str, Any]], filename: str = "bootstrap-report.json") -> Path:
    data = report.to_dict() if isinstance(report, BootstrapReport) else report
    path = Path(filename).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(data, f, indent=2)
    logger.info(f"✅ Report exported to {path}")
    return path


def summary_message(report: BootstrapReport) -> str:
    joins = report.join_report.results if report.join_report else []
    joined = sum(1 for r in joins if r.status != JoinStatus.FAILED)
    if report.exit_code == 0:
        return f"✅ Swarm bootstrap converged: leader + {joined} host(s) joined in {report.duration:.0f}s"
    if report.fatal_error is not None:
        return f"❌ Swarm bootstrap aborted: {report.fatal_error}"
    failed = [r.host.identity for r in joins if r.status == JoinStatus.FAILED]
    failed += [r.host.identity for r in report.failed_installs if r.host.identity not in failed]
    return f"⚠️ Swarm bootstrap partially failed: {joined} joined, failed: {', '.join(failed)}"


def send_slack_alert(webhook_url: str, message: str) -> bool:
    payload = {"text": message}
    try:
        response = requests.post(webhook_url, json=payload, timeout=10)
        if response.status_code != 200:
            logger.error(f"Slack webhook failed: {response.status_code} {response.text}")
            return False
        logger.info("Slack alert sent successfully.")
        return True
    except requests.RequestException as e:
        logger.error(f"Slack webhook error: {str(e)}")
        return False

import json
import subprocess
import sys

import pytest
from typer.testing import CliRunner

from swarmctl.cli import app
from swarmctl.modules.ssh import SSHExecutor

runner = CliRunner()

@pytest.fixture
def ssh_fake(fake, monkeypatch):
    monkeypatch.setattr(SSHExecutor, "from_config", lambda config: fake)
    return fake

def test_help():
    result = subprocess.run([sys.executable, "-m", "swarmctl.cli", "--help"], capture_output=True, text=True)
    assert "Usage" in result.stdout
    assert "bootstrap" in result.stdout

def test_bootstrap_commands_exist():
    result = runner.invoke(app, ["bootstrap", "--help"])
    assert "run" in result.stdout
    assert "plan" in result.stdout

def test_inventory_validate(inventory_file):
    result = runner.invoke(app, ["inventory", "validate", "-i", str(inventory_file)])
    assert result.exit_code == 0
    assert "4 host(s)" in result.stdout
    assert "leader (10.0.0.1)" in result.stdout

def test_inventory_validate_two_leaders(tmp_path):
    path = tmp_path / "hosts.yaml"
    path.write_text("hosts:\n  - {name: a, address: 10.0.0.1, role: leader}\n"
                    "  - {name: b, address: 10.0.0.2, role: leader}\n")
    result = runner.invoke(app, ["inventory", "validate", "-i", str(path)])
    assert result.exit_code == 1
    assert "Exactly one host must have role 'leader'" in result.stdout

def test_plan_makes_no_remote_calls(inventory_file, ssh_fake):
    result = runner.invoke(app, ["bootstrap", "plan", "-i", str(inventory_file)])
    assert result.exit_code == 0
    assert "4. join" in result.stdout
    assert "worker1 [10.0.0.3] (worker) with worker token" in result.stdout
    assert ssh_fake.calls == []

def test_bootstrap_run(inventory_file, ssh_fake, tmp_path, default_config):
    default_config.retry.initial_delay = 0
    report_path = tmp_path / "report.json"
    result = runner.invoke(app, ["bootstrap", "run", "-i", str(inventory_file), "--report", str(report_path)])

    assert result.exit_code == 0, result.stdout
    assert "Exit status: 0" in result.stdout
    assert ssh_fake.closed
    data = json.loads(report_path.read_text())
    assert data['leader']['status'] == 'done'
    assert [h['status'] for h in data['joins']['hosts']] == ['joined'] * 3

def test_bootstrap_run_init_failure(inventory_file, ssh_fake, default_config):
    ssh_fake.fail('leader', 'swarm init', stderr='could not choose an IP address to advertise')
    result = runner.invoke(app, ["bootstrap", "run", "-i", str(inventory_file)])
    assert result.exit_code == 1
    assert "Fatal: ❌ InitError" in result.stdout
    assert ssh_fake.commands_for(pattern='join-token') == []

def test_bootstrap_run_no_verify(inventory_file, ssh_fake, default_config):
    assert runner.invoke(app, ["bootstrap", "run", "-i", str(inventory_file)]).exit_code == 0
    ssh_fake.reinitialize_cluster('leader')

    result = runner.invoke(app, ["bootstrap", "run", "-i", str(inventory_file)])
    assert result.exit_code == 1
    assert "stale membership" in result.stdout

    result = runner.invoke(app, ["bootstrap", "run", "-i", str(inventory_file), "--no-verify"])
    assert result.exit_code == 0

def test_bootstrap_run_notifies_slack(inventory_file, ssh_fake, default_config, monkeypatch):
    from swarmctl.commands import bootstrap
    messages = []
    monkeypatch.setattr(bootstrap, "send_slack_alert", lambda url, message: messages.append((url, message)))
    default_config.notifications.slack_webhook_url = "https://hooks.slack.test/x"

    runner.invoke(app, ["bootstrap", "run", "-i", str(inventory_file)])
    assert messages and messages[0][1].startswith("✅ Swarm bootstrap converged")

def test_bootstrap_run_missing_inventory(tmp_path):
    result = runner.invoke(app, ["bootstrap", "run", "-i", str(tmp_path / "missing.yaml")])
    assert result.exit_code == 1

def test_status(inventory_file, ssh_fake):
    result = runner.invoke(app, ["status", "-i", str(inventory_file), "--json"])
    assert result.exit_code == 1
    data = json.loads(result.stdout)
    assert data['pending'] == ['leader', 'manager1', 'worker1', 'worker2']
    assert ssh_fake.mutating_calls() == []

    assert runner.invoke(app, ["bootstrap", "run", "-i", str(inventory_file)]).exit_code == 0
    result = runner.invoke(app, ["status", "-i", str(inventory_file)])
    assert result.exit_code == 0
    assert "✅ worker1 [10.0.0.3] worker swarm=active install=yes, join=yes" in result.stdout

def test_config_init_and_show(tmp_path):
    path = tmp_path / "config.yaml"
    result = runner.invoke(app, ["config", "init", "-o", str(path)])
    assert result.exit_code == 0
    assert path.exists()

    assert runner.invoke(app, ["config", "init", "-o", str(path)]).exit_code == 1

    result = runner.invoke(app, ["config", "show", "-c", str(path)])
    assert result.exit_code == 0
    assert "swarm_port: 2377" in result.stdout

    assert runner.invoke(app, ["config", "validate", str(path)]).exit_code == 0

import pytest
from fastapi.testclient import TestClient

from swarmctl.api.deps import get_executor_factory
from swarmctl.api.main import app
from swarmctl.config import Config
from swarmctl.modules.swarm.config import get_config

HEADERS = {"X-API-Key": Config.API_KEY}

@pytest.fixture
def client(fake):
    app.dependency_overrides[get_executor_factory] = lambda: (lambda config: fake)
    yield TestClient(app)
    app.dependency_overrides.clear()

def test_requires_api_key(client):
    response = client.post("/inventory/validate", json={"hosts": []})
    assert response.status_code == 403
    response = client.post("/inventory/validate", json={"hosts": []}, headers={"X-API-Key": "wrong"})
    assert response.status_code == 403

def test_validate_inventory(client, inventory_file):
    response = client.post("/inventory/validate", json={"inventory": str(inventory_file)}, headers=HEADERS)
    assert response.status_code == 200
    data = response.json()
    assert data['valid']
    assert data['leader'] == 'leader'
    assert len(data['hosts']) == 4

def test_validate_inventory_errors(client):
    hosts = [
        {"name": "a", "address": "10.0.0.1", "role": "leader"},
        {"name": "a", "address": "10.0.0.2", "role": "worker"},
    ]
    data = client.post("/inventory/validate", json={"hosts": hosts}, headers=HEADERS).json()
    assert not data['valid']
    assert data['error']['error'] == 'ConfigError'
    assert data['error']['host'] == 'a'

    data = client.post("/inventory/validate", json={}, headers=HEADERS).json()
    assert not data['valid']

def test_bootstrap(client, fake, inventory_file, default_config):
    response = client.post("/bootstrap", json={"inventory": str(inventory_file)}, headers=HEADERS)
    assert response.status_code == 200
    data = response.json()
    assert data['exit_code'] == 0
    assert fake.joined_with == {'manager1': 'manager', 'worker1': 'worker', 'worker2': 'worker'}
    assert fake.closed

def test_bootstrap_partial_failure_is_200(client, fake, inventory_file):
    fake.unreachable('worker2')
    response = client.post("/bootstrap", json={"inventory": str(inventory_file)}, headers=HEADERS)
    assert response.status_code == 200
    data = response.json()
    assert data['exit_code'] == 1
    failed = [h for h in data['joins']['hosts'] if h['status'] == 'failed']
    assert [h['host'] for h in failed] == ['worker2']

def test_bootstrap_bad_inventory(client, tmp_path):
    response = client.post("/bootstrap", json={"inventory": str(tmp_path / "missing.yaml")}, headers=HEADERS)
    assert response.status_code == 400
    assert response.json()['detail']['step'] == 'registry'

def test_bootstrap_verify_flag_is_per_request(client, fake, inventory_file, default_config):
    client.post("/bootstrap", json={"inventory": str(inventory_file)}, headers=HEADERS)
    fake.reinitialize_cluster('leader')
    data = client.post("/bootstrap", json={"inventory": str(inventory_file), "verify": False},
                       headers=HEADERS).json()
    assert data['exit_code'] == 0
    assert default_config.orchestrator.verify_membership is True

def test_status(client, inventory_file):
    data = client.post("/status", json={"inventory": str(inventory_file)}, headers=HEADERS).json()
    assert data['converged'] is False
    assert [h['host'] for h in data['hosts']] == ['leader', 'manager1', 'worker1', 'worker2']

def test_request_config_does_not_replace_global(client, fake, inventory_file, default_config, tmp_path):
    config_file = tmp_path / "deploy.yaml"
    config_file.write_text("runtime:\n  runtime_user: deploy\n")
    for path in ("/bootstrap", "/status"):
        response = client.post(path, json={"inventory": str(inventory_file), "config_path": str(config_file)},
                               headers=HEADERS)
        assert response.status_code == 200
    assert fake.commands_for('worker1', 'usermod -aG docker deploy')
    assert get_config() is default_config
    assert default_config.runtime.runtime_user != 'deploy'

def test_request_config_missing_file(client, inventory_file, default_config):
    response = client.post("/bootstrap", json={"inventory": str(inventory_file), "config_path": "/nonexistent.yaml"},
                           headers=HEADERS)
    assert response.status_code == 400
    assert get_config() is default_config

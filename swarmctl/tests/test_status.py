from swarmctl.modules.swarm.orchestrator import Orchestrator
from swarmctl.modules.swarm.status import cluster_status, probe_host

MARKER_DIR = '/var/lib/swarmctl'

def test_status_is_read_only(fake, hosts):
    node = fake.node('worker1')
    node.installed = True
    node.state = 'active'
    status = probe_host(fake, hosts[2], MARKER_DIR)
    assert status['swarm_state'] == 'active'
    assert status['markers'] == {'install': False, 'join': False}
    assert not status['converged']
    assert fake.mutating_calls() == []

def test_cluster_status_after_bootstrap(fake, hosts, default_config, fast_retry):
    Orchestrator(fake, config=default_config, retry=fast_retry).run(hosts)
    fake.unreachable('worker2')
    status = cluster_status(fake, hosts, MARKER_DIR)

    assert not status['converged']
    assert status['joined'] == ['leader', 'manager1', 'worker1']
    assert status['pending'] == ['worker2']
    leader = status['hosts'][0]
    assert leader['markers'] == {'install': True, 'init': True}
    worker2 = status['hosts'][3]
    assert worker2['reachable'] is False
    assert 'Connection refused' in worker2['error']

def test_cluster_status_empty(fake):
    assert cluster_status(fake, [], MARKER_DIR) == {'converged': False, 'hosts': []}

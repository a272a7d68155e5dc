import pytest

from swarmctl.errors import JoinError
from swarmctl.modules import registry
from swarmctl.modules.guard import HostMarkerGuard
from swarmctl.modules.swarm.credentials import CredentialBroker
from swarmctl.modules.swarm.join import JoinCoordinator
from swarmctl.modules.swarm.models import CredentialClass, JoinStatus

from .conftest import install_done

@pytest.fixture
def credentials(fake, hosts):
    install_done(fake, *[h.identity for h in hosts])
    fake._init_cluster(fake.node('leader'))
    return CredentialBroker(fake).issue_credentials(hosts[0])

def coordinator(fake, **kwargs):
    return JoinCoordinator(fake, HostMarkerGuard(fake), **kwargs)

def test_join_binds_credential_to_role(fake, hosts, credentials):
    report = coordinator(fake).join_all(hosts, credentials)
    assert report.ok
    assert [r.host.identity for r in report.results] == ['manager1', 'worker1', 'worker2']
    assert report.get('manager1').credential_class == CredentialClass.MANAGER
    assert report.get('worker1').credential_class == CredentialClass.WORKER
    assert fake.joined_with == {'manager1': 'manager', 'worker1': 'worker', 'worker2': 'worker'}
    [join] = fake.commands_for('worker1', 'swarm join --token')
    assert join.command.endswith('10.0.0.1:2377')

def test_role_binding_under_concurrency(fake):
    records = [{'name': 'leader', 'address': '10.0.1.1', 'role': 'leader'}]
    for i in range(12):
        role = 'manager' if i % 3 == 0 else 'worker'
        records.append({'name': f'{role}{i}', 'address': f'10.0.1.{i + 10}', 'role': role})
    hosts = registry.load(records)
    install_done(fake, *[h.identity for h in hosts])
    fake._init_cluster(fake.node('leader'))
    credentials = CredentialBroker(fake).issue_credentials(hosts[0])

    report = coordinator(fake).join_all(hosts, credentials, max_workers=8)
    assert report.ok
    for host in hosts[1:]:
        assert fake.joined_with[host.identity] == host.role.value

def test_leader_cannot_join(fake, hosts, credentials):
    with pytest.raises(ValueError):
        coordinator(fake).join(hosts[0], credentials)

def test_failure_isolation(fake, hosts, credentials):
    fake.unreachable('worker1')
    report = coordinator(fake).join_all(hosts, credentials)
    assert not report.ok
    assert report.get('worker1').status == JoinStatus.FAILED
    assert report.get('worker1').step == 'probe'
    assert report.get('manager1').status == JoinStatus.JOINED
    assert report.get('worker2').status == JoinStatus.JOINED
    with pytest.raises(JoinError) as exc:
        report.raise_for_failures()
    assert exc.value.report is report
    assert 'worker1' in str(exc.value)

def test_join_is_not_retried_and_secret_is_redacted(fake, hosts, credentials):
    token = credentials.worker.secret
    fake.fail('worker2', 'swarm join --token', stderr=f'Error response from daemon: rejected token {token}')
    report = coordinator(fake).join_all(hosts, credentials)
    result = report.get('worker2')
    assert result.status == JoinStatus.FAILED
    assert token not in result.reason
    assert '***' in result.reason
    assert len(fake.commands_for('worker2', 'swarm join --token')) == 1
    assert 'join' not in fake.node('worker2').markers

def test_blocked_hosts_are_not_attempted(fake, hosts, credentials):
    report = coordinator(fake).join_all(hosts, credentials, blocked={'worker2': 'runtime install failed'})
    result = report.get('worker2')
    assert result.status == JoinStatus.FAILED
    assert result.step == 'install'
    assert fake.commands_for('worker2') == []

def test_second_join_is_skipped(fake, hosts, credentials):
    join = coordinator(fake)
    join.join_all(hosts, credentials)
    before = len(fake.calls)
    report = join.join_all(hosts, credentials)
    assert all(r.status == JoinStatus.ALREADY_JOINED for r in report.results)
    assert fake.mutating_calls(since=before) == []

def test_active_node_without_marker_is_adopted(fake, hosts, credentials):
    node = fake.node('worker1')
    node.state = 'active'
    node.node_id = f"worker1-{fake.cluster_id}"
    fake.members.add(node.node_id)
    report = coordinator(fake).join_all(hosts, credentials)
    assert report.get('worker1').status == JoinStatus.ALREADY_JOINED
    assert fake.commands_for('worker1', 'swarm join --token') == []

def test_stale_membership_is_reported(fake, hosts, credentials):
    coordinator(fake).join_all(hosts, credentials)
    fake.reinitialize_cluster('leader')
    fresh = CredentialBroker(fake).issue_credentials(hosts[0])

    before = len(fake.calls)
    report = coordinator(fake).join_all(hosts, fresh)
    for identity in ('manager1', 'worker1', 'worker2'):
        result = report.get(identity)
        assert result.status == JoinStatus.FAILED
        assert result.step == 'verify'
        assert 'stale membership' in result.reason
    assert fake.commands_for(pattern='swarm join --token')[-1].seq < before

def test_stale_membership_check_can_be_disabled(fake, hosts, credentials):
    coordinator(fake).join_all(hosts, credentials)
    fake.reinitialize_cluster('leader')
    fresh = CredentialBroker(fake).issue_credentials(hosts[0])
    report = coordinator(fake, verify_membership=False).join_all(hosts, fresh)
    assert report.ok
    assert fake.commands_for(pattern='docker node ls') == []

def test_interrupt_cancels_queued_joins(fake, hosts, credentials):
    fake.hold('worker1', 0.5)

    def interrupt(result):
        raise KeyboardInterrupt

    with pytest.raises(KeyboardInterrupt):
        coordinator(fake).join_all(hosts, credentials, max_workers=1, on_done=interrupt)
    assert fake.joined_with['manager1'] == 'manager'
    assert 'worker2' not in fake.joined_with
    assert fake.commands_for('worker2') == []

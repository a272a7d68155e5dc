import re
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

import pytest

from swarmctl.errors import ExecutionError
from swarmctl.modules import registry
from swarmctl.modules.ssh import CommandResult, RemoteExecutor
from swarmctl.modules.swarm.config import BootstrapConfig, set_config
from swarmctl.modules.swarm.retry import RetryPolicy

MARKER_RE = re.compile(r"/(install|init|join)\.done")
JOIN_RE = re.compile(r"docker swarm join --token (\S+) (\S+)")

# Substrings of commands that change host state
MUTATING = ('apt-get', 'curl ', ' tee ', 'systemctl', 'usermod', 'swarm init', 'swarm join ')

ALREADY_IN_SWARM = ("Error response from daemon: This node is already part of a swarm. "
                    "Use \"docker swarm leave\" to leave this swarm and join another one.")


@dataclass
class FakeNode:
    identity: str
    markers: Set[str] = field(default_factory=set)
    installed: bool = False
    state: str = 'inactive'
    node_id: Optional[str] = None


@dataclass
class Rule:
    identity: Optional[str]
    pattern: str
    exit_code: int = 1
    stderr: str = 'boom'
    times: Optional[int] = None
    exc: Optional[Exception] = None


@dataclass
class Call:
    seq: int
    timestamp: float
    host: str
    command: str

    @property
    def mutating(self) -> bool:
        return any(m in self.command for m in MUTATING)


class FakeExecutor(RemoteExecutor):
    """In-memory hosts answering the commands a bootstrap sends.

    Every command is logged with a sequence number. Failures are scripted
    with ``fail`` and ``unreachable``.
    """

    def __init__(self):
        self.nodes: Dict[str, FakeNode] = {}
        self.calls: List[Call] = []
        self.rules: List[Rule] = []
        self.down: Set[str] = set()
        self.holds: Dict[str, float] = {}
        self.joined_with: Dict[str, str] = {}
        self.cluster_id: Optional[str] = None
        self.tokens: Dict[str, str] = {}
        self.members: Set[str] = set()
        self.generation = 0
        self.closed = False
        self._lock = threading.Lock()

    def node(self, identity: str) -> FakeNode:
        return self.nodes.setdefault(identity, FakeNode(identity))

    def fail(self, identity, pattern, exit_code=1, stderr='boom', times=None, exc=None):
        self.rules.append(Rule(identity, pattern, exit_code, stderr, times, exc))

    def unreachable(self, identity):
        self.down.add(identity)

    def hold(self, identity, seconds):
        """Stall the next command sent to a host."""
        self.holds[identity] = seconds

    def commands_for(self, identity=None, pattern=''):
        return [c for c in self.calls if (identity is None or c.host == identity) and pattern in c.command]

    def mutating_calls(self, since=0):
        return [c for c in self.calls[since:] if c.mutating]

    def reinitialize_cluster(self, leader: str):
        """Simulate the leader being re-initialized out of band."""
        with self._lock:
            self._init_cluster(self.node(leader))

    def execute(self, host, command, timeout=None, secrets=()):
        delay = self.holds.pop(host.identity, 0)
        if delay:
            time.sleep(delay)
        with self._lock:
            self.calls.append(Call(len(self.calls), time.time(), host.identity, command))
            if host.identity in self.down:
                raise ExecutionError("Connection refused", host=host.identity, step='connect')
            for rule in self.rules:
                if rule.identity not in (None, host.identity) or rule.pattern not in command:
                    continue
                if rule.times is not None:
                    if rule.times <= 0:
                        continue
                    rule.times -= 1
                if rule.exc is not None:
                    raise rule.exc
                return CommandResult(stdout='', stderr=rule.stderr, exit_code=rule.exit_code)
            return self._answer(self.node(host.identity), command)

    def close(self):
        self.closed = True

    def _init_cluster(self, node: FakeNode):
        self.generation += 1
        self.cluster_id = f"cluster{self.generation:04d}"
        self.tokens = {
            'manager': f"SWMTKN-1-{self.cluster_id}-manager{self.generation}",
            'worker': f"SWMTKN-1-{self.cluster_id}-worker{self.generation}",
        }
        node.state = 'active'
        node.node_id = f"{node.identity}-{self.cluster_id}"
        self.members = {node.node_id}

    def _answer(self, node: FakeNode, command: str) -> CommandResult:
        ok = CommandResult(stdout='', stderr='', exit_code=0)
        marker = MARKER_RE.search(command)

        if command.startswith('test -f') and marker:
            return CommandResult('', '', 0 if marker.group(1) in node.markers else 1)
        if marker and ' tee ' in command:
            node.markers.add(marker.group(1))
            return ok
        if '.Swarm.LocalNodeState' in command:
            return CommandResult(node.state if node.installed else 'unavailable', '', 0)
        if '.Swarm.NodeID' in command:
            return CommandResult(node.node_id if node.state == 'active' else '', '', 0)
        if '.Swarm.Cluster.ID' in command:
            return CommandResult(self.cluster_id or '', '', 0)
        if 'systemctl enable' in command:
            node.installed = True
            return ok
        if any(step in command for step in ('apt-get', 'curl ', 'usermod')):
            return ok
        if 'swarm init' in command:
            if node.state == 'active':
                return CommandResult('', ALREADY_IN_SWARM, 1)
            self._init_cluster(node)
            return CommandResult(f"Swarm initialized: current node ({node.node_id}) is now a manager.", '', 0)
        if 'join-token -q' in command:
            if not self.tokens or node.state != 'active':
                return CommandResult('', "Error response from daemon: This node is not a swarm manager.", 1)
            return CommandResult(self.tokens[command.rsplit(' ', 1)[-1]] + '\n', '', 0)
        join = JOIN_RE.search(command)
        if join:
            if node.state == 'active':
                return CommandResult('', ALREADY_IN_SWARM, 1)
            token = join.group(1)
            role = next((r for r, t in self.tokens.items() if t == token), None)
            if role is None:
                return CommandResult('', f"Error response from daemon: invalid join token {token}", 1)
            node.state = 'active'
            node.node_id = f"{node.identity}-{self.cluster_id}"
            self.members.add(node.node_id)
            self.joined_with[node.identity] = role
            return CommandResult(f"This node joined a swarm as a {role}.", '', 0)
        if 'docker node ls -q' in command:
            return CommandResult('\n'.join(sorted(self.members)) + '\n', '', 0)
        raise AssertionError(f"unexpected command: {command}")


SCENARIO_HOSTS = [
    {'name': 'leader', 'address': '10.0.0.1', 'role': 'leader'},
    {'name': 'manager1', 'address': '10.0.0.2', 'role': 'manager'},
    {'name': 'worker1', 'address': '10.0.0.3', 'role': 'worker'},
    {'name': 'worker2', 'address': '10.0.0.4', 'role': 'worker'},
]

SCENARIO_YAML = """
hosts:
  - name: leader
    address: 10.0.0.1
    role: leader
  - name: manager1
    address: 10.0.0.2
    role: manager
  - name: worker1
    address: 10.0.0.3
    role: worker
  - name: worker2
    address: 10.0.0.4
    role: worker
"""


@pytest.fixture(autouse=True)
def default_config():
    config = BootstrapConfig()
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture
def fake():
    return FakeExecutor()


@pytest.fixture
def hosts():
    return registry.load_records(SCENARIO_HOSTS)


@pytest.fixture
def fast_retry():
    return RetryPolicy(attempts=3, initial_delay=0, max_delay=0)


@pytest.fixture
def inventory_file(tmp_path):
    path = tmp_path / "hosts.yaml"
    path.write_text(SCENARIO_YAML)
    return path


def install_done(fake, *identities):
    """Mark hosts as having the runtime installed."""
    for identity in identities:
        node = fake.node(identity)
        node.installed = True
        node.markers.add('install')

"""Shell command builders for the remote side of the bootstrap.

Every mutating command is written so that running it twice on the same
host leaves the host in the same state.
"""
import shlex
from typing import List

from .models import CredentialClass, Operation

SWARM_STATE_FORMAT = "'{{.Swarm.LocalNodeState}}'"
SWARM_NODE_ID_FORMAT = "'{{.Swarm.NodeID}}'"
SWARM_CLUSTER_ID_FORMAT = "'{{.Swarm.Cluster.ID}}'"

# apt must not prompt on a non-interactive session
APT_ENV = "DEBIAN_FRONTEND=noninteractive"


def marker_path(marker_dir: str, operation: Operation) -> str:
    return f"{marker_dir.rstrip('/')}/{operation.value}.done"


def probe_marker(marker_dir: str, operation: Operation) -> str:
    return f"test -f {shlex.quote(marker_path(marker_dir, operation))}"


def write_marker(marker_dir: str, operation: Operation, evidence: str = 'completed') -> str:
    path = shlex.quote(marker_path(marker_dir, operation))
    return (
        f"sudo -n mkdir -p {shlex.quote(marker_dir)} && "
        f"echo \"{evidence} $(date -u +%Y-%m-%dT%H:%M:%SZ)\" | sudo -n tee {path} >/dev/null"
    )


def swarm_state() -> str:
    """Print the local swarm state (inactive, pending, active, error, locked)."""
    return f"sudo -n docker info --format {SWARM_STATE_FORMAT} 2>/dev/null || echo unavailable"


def swarm_node_id() -> str:
    return f"sudo -n docker info --format {SWARM_NODE_ID_FORMAT}"


def swarm_cluster_id() -> str:
    return f"sudo -n docker info --format {SWARM_CLUSTER_ID_FORMAT}"


def install_prerequisites(packages: List[str]) -> str:
    return (
        f"sudo -n {APT_ENV} apt-get update -q && "
        f"sudo -n {APT_ENV} apt-get install -y -q {' '.join(shlex.quote(p) for p in packages)}"
    )


def add_package_source(repository_url: str) -> str:
    url = repository_url.rstrip('/')
    keyring = "/etc/apt/keyrings/docker.asc"
    return (
        "sudo -n install -m 0755 -d /etc/apt/keyrings && "
        f"sudo -n curl -fsSL {shlex.quote(url + '/gpg')} -o {keyring} && "
        f"sudo -n chmod a+r {keyring} && "
        f"echo \"deb [arch=$(dpkg --print-architecture) signed-by={keyring}] {url} "
        "$(. /etc/os-release && echo \"$VERSION_CODENAME\") stable\" | "
        "sudo -n tee /etc/apt/sources.list.d/docker.list >/dev/null"
    )


def refresh_metadata() -> str:
    return f"sudo -n {APT_ENV} apt-get update -q"


def install_packages(packages: List[str]) -> str:
    return f"sudo -n {APT_ENV} apt-get install -y -q {' '.join(shlex.quote(p) for p in packages)}"


def enable_service(service: str = 'docker') -> str:
    return f"sudo -n systemctl enable --now {shlex.quote(service)}"


def grant_group(user: str, group: str = 'docker') -> str:
    return f"sudo -n usermod -aG {shlex.quote(group)} {shlex.quote(user)}"


def swarm_init(advertise_address: str) -> str:
    return f"sudo -n docker swarm init --advertise-addr {shlex.quote(advertise_address)}"


def join_token(credential_class: CredentialClass) -> str:
    return f"sudo -n docker swarm join-token -q {credential_class.value}"


def swarm_join(secret: str, leader_address: str, port: int = 2377) -> str:
    return f"sudo -n docker swarm join --token {shlex.quote(secret)} {shlex.quote(f'{leader_address}:{port}')}"


def list_node_ids() -> str:
    return "sudo -n docker node ls -q"

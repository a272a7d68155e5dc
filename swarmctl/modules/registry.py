"""Host registry: static declaration of every node taking part in the swarm.

Two source formats are understood:

* YAML, either a mapping with a ``hosts`` list or a bare list of records::

    hosts:
      - name: leader
        address: 10.0.0.1
        role: leader
      - name: worker1
        address: 10.0.0.3
        role: worker
        ssh_user: vagrant

* Ansible INI inventories with ``[leader]``, ``[managers]`` and ``[workers]``
  groups, as used by the original Vagrant playbooks::

    [leader]
    leader ansible_host=10.0.0.1

    [workers]
    worker1 ansible_host=10.0.0.3 ansible_user=vagrant
"""
import ipaddress
import logging
import re
import shlex
from pathlib import Path
from typing import Any, Dict, Iterable, List, Union

import yaml

from swarmctl.errors import ConfigError
from swarmctl.modules.swarm.models import Host, Role

logger = logging.getLogger("registry")

HOSTNAME_RE = re.compile(r"^(?=.{1,253}$)([a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)(\.[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$")

# INI group name -> role
INVENTORY_GROUPS = {
    'leader': Role.LEADER,
    'leaders': Role.LEADER,
    'master': Role.LEADER,
    'manager': Role.MANAGER,
    'managers': Role.MANAGER,
    'worker': Role.WORKER,
    'workers': Role.WORKER,
}


def _parse_role(value: Any, identity: str) -> Role:
    try:
        return Role(str(value).strip().lower())
    except ValueError:
        raise ConfigError(
            f"Unknown role '{value}' (expected one of: {', '.join(r.value for r in Role)})",
            host=identity, step='registry'
        )


def _validate_address(address: str, identity: str) -> str:
    address = str(address).strip()
    try:
        return str(ipaddress.ip_address(address))
    except ValueError:
        pass
    # Dotted digits that failed IP parsing are a malformed address, not a hostname
    if all(label.isdigit() for label in address.split('.')):
        raise ConfigError(f"Invalid address '{address}'", host=identity, step='registry')
    if HOSTNAME_RE.match(address):
        return address
    raise ConfigError(f"Invalid address '{address}'", host=identity, step='registry')


def _host_from_record(record: Dict[str, Any], index: int) -> Host:
    if not isinstance(record, dict):
        raise ConfigError(f"Host entry #{index} must be a mapping, got {type(record).__name__}", step='registry')

    identity = record.get('name') or record.get('identity')
    if not identity:
        raise ConfigError(f"Host entry #{index} has no name", step='registry')
    identity = str(identity)

    address = record.get('address') or record.get('ip')
    if not address:
        raise ConfigError("Host has no address", host=identity, step='registry')

    if 'role' not in record:
        raise ConfigError("Host has no role", host=identity, step='registry')

    port = record.get('ssh_port')
    if port is not None and not str(port).isdigit():
        raise ConfigError(f"Invalid ssh_port '{port}'", host=identity, step='registry')
    return Host(
        identity=identity,
        address=_validate_address(address, identity),
        role=_parse_role(record['role'], identity),
        ssh_user=record.get('ssh_user'),
        ssh_port=int(port) if port is not None else None,
        ssh_key_path=record.get('ssh_key_path'),
    )


def validate_hosts(hosts: List[Host]) -> List[Host]:
    """Check registry-wide invariants.

    Raises:
        ConfigError: on zero or multiple leaders, or duplicated identity/address
    """
    if not hosts:
        raise ConfigError("Host registry is empty", step='registry')

    leaders = [h for h in hosts if h.role == Role.LEADER]
    if len(leaders) != 1:
        names = ', '.join(h.identity for h in leaders) or 'none'
        raise ConfigError(
            f"Exactly one host must have role 'leader', found {len(leaders)} ({names})",
            step='registry'
        )

    seen_ids = set()
    seen_addrs = {}
    for host in hosts:
        if host.identity in seen_ids:
            raise ConfigError("Duplicate host identity", host=host.identity, step='registry')
        seen_ids.add(host.identity)
        if host.address in seen_addrs:
            raise ConfigError(
                f"Address {host.address} is also used by {seen_addrs[host.address]}",
                host=host.identity, step='registry'
            )
        seen_addrs[host.address] = host.identity

    return hosts


def load_records(records: Iterable[Dict[str, Any]]) -> List[Host]:
    """Build and validate hosts from already-parsed records."""
    hosts = [_host_from_record(record, idx) for idx, record in enumerate(records, 1)]
    return validate_hosts(hosts)


def parse_yaml(text: str) -> List[Host]:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in host registry: {e}", step='registry')

    if isinstance(data, dict):
        data = data.get('hosts')
    if not isinstance(data, list):
        raise ConfigError("Host registry must be a list of hosts or a mapping with a 'hosts' list",
                          step='registry')
    return load_records(data)


def parse_inventory(text: str) -> List[Host]:
    """Parse an Ansible INI inventory into hosts.

    Groups other than the known role groups (e.g. ``[all:vars]``) are ignored.
    """
    records = []
    role = None
    for lineno, raw in enumerate(text.splitlines(), 1):
        line = raw.strip()
        if not line or line.startswith(('#', ';')):
            continue
        if line.startswith('[') and line.endswith(']'):
            group = line[1:-1].strip().lower()
            role = INVENTORY_GROUPS.get(group)
            if role is None:
                logger.debug(f"Ignoring inventory group [{group}] at line {lineno}")
            continue
        if role is None:
            continue

        try:
            parts = shlex.split(line)
        except ValueError as e:
            raise ConfigError(f"Cannot parse inventory line {lineno}: {e}", step='registry')
        name, options = parts[0], {}
        for part in parts[1:]:
            key, sep, value = part.partition('=')
            if not sep:
                raise ConfigError(f"Malformed inventory option '{part}' at line {lineno}",
                                  host=name, step='registry')
            options[key] = value

        record = {
            'name': name,
            'address': options.get('ansible_host', name),
            'role': role.value,
            'ssh_user': options.get('ansible_user') or options.get('ansible_ssh_user'),
            'ssh_key_path': options.get('ansible_ssh_private_key_file'),
        }
        if 'ansible_port' in options:
            record['ssh_port'] = options['ansible_port']
        records.append(record)

    return load_records(records)


def load(source: Union[str, Path, List[Dict[str, Any]]]) -> List[Host]:
    """Load the host registry.

    Args:
        source: Path to a YAML or INI inventory file, or a list of host records

    Returns:
        Hosts in declaration order

    Raises:
        ConfigError: If the registry is missing, malformed or inconsistent
    """
    if isinstance(source, list):
        return load_records(source)

    path = Path(source).expanduser()
    if not path.exists():
        raise ConfigError(f"Host registry not found: {path}", step='registry')

    text = path.read_text()
    if path.suffix.lower() in ('.yaml', '.yml', '.json'):
        hosts = parse_yaml(text)
    elif path.suffix.lower() in ('.ini', '.cfg') or path.suffix == '' or text.lstrip().startswith('['):
        hosts = parse_inventory(text)
    else:
        hosts = parse_yaml(text)

    logger.debug(f"Loaded {len(hosts)} host(s) from {path}")
    return hosts


def leader_of(hosts: List[Host]) -> Host:
    return next(h for h in hosts if h.role == Role.LEADER)


def non_leaders(hosts: List[Host]) -> List[Host]:
    return [h for h in hosts if h.role != Role.LEADER]

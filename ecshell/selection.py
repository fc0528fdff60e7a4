import logging
import re
import subprocess
from concurrent.futures import ThreadPoolExecutor

from .exceptions import (
    ConfigInvalid,
    DependencyMissing,
    EcshellError,
    NoAddressAtIndex,
    NoMatchingContainerOnHost,
    QueryFailure,
)
from .models import ConnectionTarget, DockerContainerRecord, UnitFailure
from .ssh import docker_ps_args, ssh_argv

# An alternative only matches at the start of a name segment, so "a" does not
# match inside "c-task".
SEGMENT_START = r"(?<![A-Za-z0-9])"
# Containers started by the ECS agent are named ecs-<family>-<revision>-<name>-<hash>.
ECS_NAME_PREFIX = re.compile(r"^ecs-[\w.-]*?-\d+-")


def filter_alternation(service_filter):
    """Turn ``"a,b"`` into the regex ``(?:a|b)``."""
    parts = [part.strip() for part in (service_filter or "").split(",")]
    parts = [part for part in parts if part]
    if not parts:
        raise ConfigInvalid("Service filter is empty")
    alternation = "(?:" + "|".join(parts) + ")"
    try:
        re.compile(alternation)
    except re.error as e:
        raise ConfigInvalid(f"Invalid service filter '{service_filter}': {e}")
    return alternation


def filter_regex(service_filter):
    return re.compile(SEGMENT_START + filter_alternation(service_filter))


def container_names(description):
    """Yield each field of a ``docker ps`` description, plus ECS names without their prefix."""
    for name in re.split(r"[\s,]+", description):
        if not name:
            continue
        yield name
        stripped = ECS_NAME_PREFIX.sub("", name, count=1)
        if stripped != name:
            yield stripped


def matches_container(pattern, description):
    return any(pattern.search(name) for name in container_names(description))


def select_addresses(addresses, select_all=False, index=1):
    addresses = list(addresses)
    if select_all and addresses:
        return addresses
    if 1 <= index <= len(addresses):
        return [addresses[index - 1]]
    raise NoAddressAtIndex(
        f"No address at index {index}, {len(addresses)} address(es) resolved"
    )


class ContainerLister:
    """Lists running docker containers on a host behind the bastion."""

    def __init__(self, settings, logger=None):
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)

    def _log(self, address, message, level=logging.INFO):
        self.logger.log(level, f"[{address}] {message}")

    def list(self, address):
        argv = ssh_argv(self.settings, address, docker_ps_args(self.settings))
        self._log(address, "Listing containers...", logging.DEBUG)
        try:
            proc = subprocess.run(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
            )
        except FileNotFoundError:
            raise DependencyMissing("The ssh client is required.")
        if proc.returncode != 0:
            error = (proc.stderr or "").strip() or f"exit status {proc.returncode}"
            raise QueryFailure(f"Listing containers on {address} failed: {error}")

        records = []
        for line in proc.stdout.splitlines():
            record = DockerContainerRecord.from_ps_line(line)
            if record is not None:
                records.append(record)
        self._log(address, f"{len(records)} container(s) running", logging.DEBUG)
        return records


class SelectionEngine:
    def __init__(self, settings, lister=None, logger=None):
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)
        self.lister = lister or ContainerLister(settings, self.logger)
        self.pattern = filter_regex(settings.service_filter)

    def targets_on(self, address):
        matches = [
            ConnectionTarget(address, record.container_id, record.description)
            for record in self.lister.list(address)
            if matches_container(self.pattern, record.description)
        ]
        if not matches:
            raise NoMatchingContainerOnHost(
                f"No container on {address} matches '{self.settings.service_filter}'"
            )
        for target in matches:
            self.logger.info(f"[{address}] Matched {target.container_id} {target.description}")
        return matches

    def select(self, addresses):
        """Return ``(targets, failures)`` for the selected private addresses.

        In indexed mode any failure is raised. In select-all mode each host is
        listed on its own thread and its failure is collected as a
        ``UnitFailure`` without affecting the other hosts.
        """
        selected = select_addresses(
            addresses.private, self.settings.select_all, self.settings.index
        )
        if not self.settings.select_all:
            return self.targets_on(selected[0]), []

        targets, failures = [], []
        with ThreadPoolExecutor(max_workers=len(selected)) as pool:
            futures = [(address, pool.submit(self.targets_on, address)) for address in selected]
            for address, future in futures:
                try:
                    targets.extend(future.result())
                except DependencyMissing:
                    raise
                except EcshellError as e:
                    failures.append(UnitFailure(address, e))
        return targets, failures

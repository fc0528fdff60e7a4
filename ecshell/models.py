from dataclasses import dataclass
from typing import Tuple


def arn_suffix(arn: str) -> str:
    return arn.split("/")[-1]


@dataclass(frozen=True)
class TaskRecord:
    task_arn: str
    status: str
    service_name: str = ""
    container_instance_arn: str = ""

    @property
    def task_id(self) -> str:
        return arn_suffix(self.task_arn)

    @property
    def is_running(self) -> bool:
        return self.status == "RUNNING"


@dataclass(frozen=True)
class ContainerInstance:
    arn: str
    ec2_instance_id: str


@dataclass(frozen=True)
class NetworkAddresses:
    """Addresses of the resolved hosts, in resolution order."""

    public: Tuple[str, ...] = ()
    private: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DockerContainerRecord:
    container_id: str
    description: str

    @classmethod
    def from_ps_line(cls, line):
        """Parse one ``docker ps --format '{{.ID}}\\t{{.Image}}\\t{{.Names}}'`` line."""
        line = line.strip()
        if not line:
            return None
        container_id, _, rest = line.partition("\t")
        if not rest:
            container_id, _, rest = line.partition(" ")
        return cls(container_id=container_id.strip(), description=rest.strip())


@dataclass(frozen=True)
class ConnectionTarget:
    address: str
    container_id: str
    description: str = ""

    def __str__(self):
        return f"{self.address} {self.container_id} {self.description}".rstrip()


@dataclass(frozen=True)
class UnitFailure:
    address: str
    error: Exception

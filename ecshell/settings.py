from dataclasses import dataclass, field, fields
from typing import Optional, Tuple

from .exceptions import ConfigInvalid, MissingCommand
from .selection import filter_regex

DEFAULT_CACHE_DIR = "~/.cache/ecshell"


@dataclass(frozen=True)
class Settings:
    """Fully resolved settings for one invocation."""

    cluster: Optional[str] = None
    region: Optional[str] = None
    ecs_profile: Optional[str] = None
    aws_profile: Optional[str] = None
    bastion: Optional[str] = None
    ssh_user: Optional[str] = None
    ssh_options: Tuple[str, ...] = ()
    interactive: bool = True
    select_all: bool = False
    index: int = 1
    force_refresh: bool = False
    service_filter: Optional[str] = None
    command: Tuple[str, ...] = field(default_factory=tuple)
    cache_dir: str = DEFAULT_CACHE_DIR
    task_cache_ttl: int = 60
    host_cache_ttl: int = 3600
    docker_command: str = "docker"
    default_shell: str = "/bin/sh"

    @classmethod
    def field_names(cls):
        return [f.name for f in fields(cls)]

    @property
    def ec2_profile(self):
        return self.aws_profile or self.ecs_profile

    @property
    def exec_command(self):
        if self.command:
            return self.command
        return (self.default_shell,)

    def validate(self):
        if not self.interactive and not self.command:
            raise MissingCommand(
                "A command is required when running non-interactively."
            )
        for name in ("cluster", "bastion", "service_filter"):
            if not getattr(self, name):
                raise ConfigInvalid(f"Missing required setting: {name}")
        if self.index < 1:
            raise ConfigInvalid(f"Index must be 1 or greater, got {self.index}")
        filter_regex(self.service_filter)
        return self

import json
import logging
import os

import jsonschema

from .exceptions import ConfigInvalid, ConfigNotFound
from .settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = "~/.ecshell"
CONFIG_ENV_VAR = "ECSHELL_CONFIG"

_STRING_ARRAY = {"type": "array", "items": {"type": "string"}}


class ConfigLoader:
    """Builds ``Settings`` from defaults, config file, named profile and overrides.

    Later sources win. The config file and profiles share one schema; a
    profile lives at ``<config dir>/profiles/<name>.json``.
    """

    SCHEMA = {
        "type": "object",
        "properties": {
            "cluster": {"type": "string"},
            "region": {"type": "string"},
            "ecs_profile": {"type": "string"},
            "aws_profile": {"type": "string"},
            "bastion": {"type": "string"},
            "ssh_user": {"type": "string"},
            "ssh_options": _STRING_ARRAY,
            "interactive": {"type": "boolean"},
            "select_all": {"type": "boolean"},
            "index": {"type": "integer", "minimum": 1},
            "force_refresh": {"type": "boolean"},
            "service_filter": {"type": "string"},
            "command": _STRING_ARRAY,
            "cache_dir": {"type": "string"},
            "task_cache_ttl": {"type": "integer", "minimum": 0},
            "host_cache_ttl": {"type": "integer", "minimum": 0},
            "docker_command": {"type": "string"},
            "default_shell": {"type": "string"},
        },
        "additionalProperties": False,
    }

    TUPLE_FIELDS = ("ssh_options", "command")

    def __init__(self, config_path=None):
        self.explicit = config_path is not None
        if config_path is None:
            config_path = os.environ.get(CONFIG_ENV_VAR) or os.path.join(
                DEFAULT_CONFIG_DIR, "config.json"
            )
        self.config_path = os.path.expanduser(config_path)

    @property
    def profiles_dir(self):
        return os.path.join(os.path.dirname(self.config_path), "profiles")

    def profile_path(self, profile):
        return os.path.join(self.profiles_dir, f"{profile}.json")

    def validate_schema(self, config, source):
        try:
            jsonschema.validate(instance=config, schema=self.SCHEMA)
        except jsonschema.exceptions.ValidationError as e:
            raise ConfigInvalid(f"Configuration validation failed for {source}: {e.message}")

    def read_file(self, path):
        with open(path, "r") as f:
            try:
                config = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigInvalid(f"Failed to parse JSON config {path}: {e}")
        self.validate_schema(config, path)
        return config

    def load_config_file(self):
        if not os.path.exists(self.config_path):
            if self.explicit:
                raise ConfigNotFound(f"Config file not found: {self.config_path}")
            logger.debug(f"No config file at {self.config_path}")
            return {}
        logger.debug(f"Loading config from {self.config_path}")
        return self.read_file(self.config_path)

    def load_profile(self, profile):
        path = self.profile_path(profile)
        if not os.path.exists(path):
            raise ConfigNotFound(f"Profile '{profile}' not found at {path}")
        logger.debug(f"Loading profile '{profile}' from {path}")
        return self.read_file(path)

    def merge(self, *layers):
        merged = {}
        for layer in layers:
            for key, value in layer.items():
                if value is not None:
                    merged[key] = value
        for key in self.TUPLE_FIELDS:
            if key in merged:
                merged[key] = tuple(merged[key])
        return merged

    def load(self, profile=None, overrides=None):
        """Return validated ``Settings``; raises before any network activity."""
        layers = [self.load_config_file()]
        if profile:
            layers.append(self.load_profile(profile))
        layers.append(overrides or {})

        merged = self.merge(*layers)
        unknown = set(merged) - set(Settings.field_names())
        if unknown:
            raise ConfigInvalid(f"Unknown settings: {', '.join(sorted(unknown))}")
        return Settings(**merged).validate()

import logging
import subprocess

from .exceptions import DependencyMissing
from .ssh import docker_exec_args, ssh_argv


class Connector:
    """Runs ``docker exec`` in each target container through the bastion."""

    def __init__(self, settings, logger=None):
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)

    def _log(self, target, message, level=logging.INFO):
        self.logger.log(level, f"[{target.address}/{target.container_id}] {message}")

    def argv(self, target):
        return ssh_argv(
            self.settings,
            target.address,
            docker_exec_args(self.settings, target.container_id),
            tty=self.settings.interactive,
        )

    def run(self, target):
        argv = self.argv(target)
        self._log(target, f"Connecting via {self.settings.bastion}...")
        self._log(target, f"Running: {argv}", logging.DEBUG)
        try:
            proc = subprocess.run(argv)
        except FileNotFoundError:
            raise DependencyMissing("The ssh client is required.")
        status = proc.returncode
        if status < 0:
            # Killed by a signal; report it the way a shell does.
            status = 128 - status
        if status != 0:
            self._log(target, f"Exited with status {status}", logging.WARNING)
        return status

    def run_all(self, targets):
        """Run every target in order; a failing target does not stop the rest."""
        return [(target, self.run(target)) for target in targets]

    @staticmethod
    def exit_status(results):
        for _, status in results:
            if status != 0:
                return status
        return 0

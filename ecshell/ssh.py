import shlex

DOCKER_PS_FORMAT = "{{.ID}}\t{{.Image}}\t{{.Names}}"


def remote_command(args):
    """Quote an argument vector so the remote login shell sees it verbatim."""
    return " ".join(shlex.quote(arg) for arg in args)


def ssh_argv(settings, address, remote_args, tty=False):
    """Build an ssh invocation to ``address`` jumping through the bastion."""
    argv = ["ssh"]
    argv += list(settings.ssh_options)
    argv.append("-t" if tty else "-T")
    argv += ["-J", settings.bastion]
    if settings.ssh_user:
        argv += ["-l", settings.ssh_user]
    argv.append(address)
    argv.append(remote_command(remote_args))
    return argv


def docker_ps_args(settings):
    return shlex.split(settings.docker_command) + ["ps", "--format", DOCKER_PS_FORMAT]


def docker_exec_args(settings, container_id):
    argv = shlex.split(settings.docker_command) + ["exec"]
    argv.append("-it" if settings.interactive else "-i")
    argv.append(container_id)
    argv += list(settings.exec_command)
    return argv

import argparse
import logging
import sys

from .aws_sessions import AWSSessions
from .checker import ConfigChecker
from .config_loader import ConfigLoader
from .connector import Connector
from .ecs_resolver import EcsResolver
from .exceptions import EcshellError
from .selection import SelectionEngine

logger = logging.getLogger("ecshell")


def parse_args(argv):
    """
    Parse command line arguments. Everything after ``--`` is the command to
    run inside the container.
    """
    command = []
    if "--" in argv:
        split = argv.index("--")
        argv, command = argv[:split], argv[split + 1 :]

    parser = argparse.ArgumentParser(
        prog="ecshell",
        description="Run docker exec in an ECS service's container through an SSH bastion.",
        epilog="Example: ecshell -c prod web,worker -- rails console",
    )
    parser.add_argument("service_filter", metavar="SERVICE", nargs="?",
                        help="Service name regex, commas separate alternatives")
    parser.add_argument("command", metavar="COMMAND", nargs="*",
                        help="Command to run in the container (use -- before options)")
    parser.add_argument("--cluster", "-c", help="ECS cluster name")
    parser.add_argument("--region", "-r", help="AWS region")
    parser.add_argument("--profile", "-p", dest="config_profile",
                        help="Named ecshell profile to load")
    parser.add_argument("--ecs-profile", help="AWS profile for ECS queries")
    parser.add_argument("--aws-profile", help="AWS profile for EC2 queries")
    parser.add_argument("--bastion", "-b", help="Bastion host to jump through")
    parser.add_argument("--user", "-u", dest="ssh_user", help="SSH user on the container host")
    parser.add_argument("--index", "-n", type=int,
                        help="1-based index of the host address to use (default 1)")
    parser.add_argument("--all", "-a", dest="select_all", action="store_true", default=None,
                        help="Run on every resolved host")
    parser.add_argument("--force-refresh", "-f", action="store_true", default=None,
                        help="Ignore cached AWS query results")
    parser.add_argument("--non-interactive", "-T", dest="interactive", action="store_false",
                        default=None, help="No pseudo-terminal; a command is required")
    parser.add_argument("--config", help="Path to the config file")
    parser.add_argument("--cache-dir", help="Directory for cached AWS query results")
    parser.add_argument("--list", "-l", dest="list", action="store_true",
                        help="Print the resolved targets instead of connecting")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    args = parser.parse_intermixed_args(argv)
    args.command = list(args.command) + command
    return args


def configure_logging(verbose=False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )


def overrides_from_args(args):
    overrides = {
        "service_filter": args.service_filter,
        "cluster": args.cluster,
        "region": args.region,
        "ecs_profile": args.ecs_profile,
        "aws_profile": args.aws_profile,
        "bastion": args.bastion,
        "ssh_user": args.ssh_user,
        "index": args.index,
        "select_all": args.select_all,
        "force_refresh": args.force_refresh,
        "interactive": args.interactive,
        "cache_dir": args.cache_dir,
    }
    if args.command:
        overrides["command"] = args.command
    return overrides


def run(settings, list_only=False, aws_sessions=None, out=None):
    """Resolve, select and connect. Returns the process exit status."""
    out = out or sys.stdout
    ConfigChecker().require_all()

    resolver = EcsResolver(settings, aws_sessions or AWSSessions())
    addresses = resolver.resolve()
    targets, failures = SelectionEngine(settings, logger=logger).select(addresses)

    status = 0
    if list_only:
        for target in targets:
            print(target, file=out)
    else:
        status = Connector.exit_status(Connector(settings, logger).run_all(targets))

    if failures:
        for failure in failures:
            logger.error(f"[{failure.address}] {failure.error}")
        logger.error(f"{len(failures)} host(s) failed")
        if status == 0:
            status = failures[0].error.exit_code
    return status


def main(argv=None):
    args = parse_args(sys.argv[1:] if argv is None else argv)
    configure_logging(args.verbose)

    try:
        settings = ConfigLoader(args.config).load(
            profile=args.config_profile, overrides=overrides_from_args(args)
        )
        return run(settings, list_only=args.list)
    except EcshellError as e:
        logger.error(e)
        return e.exit_code


if __name__ == "__main__":
    sys.exit(main())

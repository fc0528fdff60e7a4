import logging

from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import NoMatchingContainers, QueryFailure
from .models import ContainerInstance, NetworkAddresses, TaskRecord, arn_suffix
from .query_cache import Query, QueryCache
from .selection import filter_regex

logger = logging.getLogger(__name__)


def _unique(values):
    seen = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


class EcsResolver:
    """Resolves a service filter in a cluster down to host addresses.

    Every lookup goes through the query cache; each step only runs once the
    previous one produced something to look up.
    """

    def __init__(self, settings, aws_sessions, cache=None):
        self.settings = settings
        self.aws_sessions = aws_sessions
        self.cache = cache or QueryCache(
            settings.cache_dir, settings.cluster, settings.region, self.execute
        )
        self.task_filter = filter_regex(settings.service_filter)

    def execute(self, query):
        client = self.aws_sessions.get_client(
            query.service, profile_name=query.profile, region_name=query.region
        )
        try:
            return query.execute(client)
        except (BotoCoreError, ClientError) as e:
            raise QueryFailure(f"{query.service} {query.operation} failed: {e}")

    def _ecs_query(self, operation, paginate=False, **params):
        params["cluster"] = self.settings.cluster
        return Query(
            "ecs",
            operation,
            profile=self.settings.ecs_profile,
            region=self.settings.region,
            params=params,
            paginate=paginate,
        )

    def _fetch(self, query, ttl):
        return self.cache.fetch(query, ttl, force_refresh=self.settings.force_refresh)

    def list_running_tasks(self):
        ttl = self.settings.task_cache_ttl
        services = self._fetch(self._ecs_query("list_services", paginate=True), ttl)
        service_names = [
            arn_suffix(arn)
            for arn in services.get("serviceArns", [])
            if self.task_filter.search(arn_suffix(arn))
        ]
        logger.debug(f"Services matching '{self.settings.service_filter}': {service_names}")

        tasks = []
        for service_name in sorted(service_names):
            response = self._fetch(
                self._ecs_query(
                    "list_tasks",
                    paginate=True,
                    serviceName=service_name,
                    desiredStatus="RUNNING",
                ),
                ttl,
            )
            for task_arn in response.get("taskArns", []):
                tasks.append(
                    TaskRecord(task_arn=task_arn, status="RUNNING", service_name=service_name)
                )

        if not tasks:
            raise NoMatchingContainers(
                f"No running tasks in cluster '{self.settings.cluster}' "
                f"match '{self.settings.service_filter}'"
            )
        return tasks

    def describe_tasks(self, tasks):
        """Return the running tasks with their container instance ARNs filled in."""
        services = {task.task_arn: task.service_name for task in tasks}
        response = self._fetch(
            self._ecs_query("describe_tasks", tasks=sorted(services)),
            self.settings.task_cache_ttl,
        )
        described = []
        for task in response.get("tasks", []):
            record = TaskRecord(
                task_arn=task["taskArn"],
                status=task.get("lastStatus", ""),
                service_name=services.get(task["taskArn"], ""),
                container_instance_arn=task.get("containerInstanceArn", ""),
            )
            if not record.is_running:
                logger.debug(f"Skipping task {record.task_id} in state {record.status}")
                continue
            if not record.container_instance_arn:
                logger.warning(
                    f"Task {record.task_id} has no container instance (Fargate?), skipping"
                )
                continue
            described.append(record)

        if not described:
            raise NoMatchingContainers(
                f"No running tasks matching '{self.settings.service_filter}' "
                f"are placed on a container instance"
            )
        return described

    def describe_container_instances(self, arns):
        response = self._fetch(
            self._ecs_query("describe_container_instances", containerInstances=sorted(arns)),
            self.settings.host_cache_ttl,
        )
        by_arn = {
            ci["containerInstanceArn"]: ci for ci in response.get("containerInstances", [])
        }
        return [
            ContainerInstance(arn=arn, ec2_instance_id=by_arn[arn]["ec2InstanceId"])
            for arn in arns
            if arn in by_arn
        ]

    def describe_hosts(self, instance_ids):
        query = Query(
            "ec2",
            "describe_instances",
            profile=self.settings.ec2_profile,
            region=self.settings.region,
            params={"InstanceIds": sorted(instance_ids)},
        )
        response = self._fetch(query, self.settings.host_cache_ttl)

        # Keep the order the instance ids were asked for, not the API's.
        by_id = {}
        for reservation in response.get("Reservations", []):
            for instance in reservation.get("Instances", []):
                by_id[instance["InstanceId"]] = instance

        public, private = [], []
        for instance_id in instance_ids:
            instance = by_id.get(instance_id)
            if instance is None:
                continue
            public.append(instance.get("PublicIpAddress"))
            private.append(instance.get("PrivateIpAddress"))
            for interface in instance.get("NetworkInterfaces", []):
                for address in interface.get("PrivateIpAddresses", []):
                    private.append(address.get("PrivateIpAddress"))
        return NetworkAddresses(public=tuple(_unique(public)), private=tuple(_unique(private)))

    def resolve(self):
        tasks = self.describe_tasks(self.list_running_tasks())
        instance_arns = _unique(task.container_instance_arn for task in tasks)
        instances = self.describe_container_instances(instance_arns)
        instance_ids = _unique(instance.ec2_instance_id for instance in instances)
        if not instance_ids:
            raise NoMatchingContainers(
                f"Container instances for '{self.settings.service_filter}' "
                f"could not be described"
            )
        addresses = self.describe_hosts(instance_ids)
        logger.info(
            f"Resolved {len(tasks)} task(s) on {len(instance_ids)} host(s): "
            f"{', '.join(addresses.private) or 'no addresses'}"
        )
        return addresses

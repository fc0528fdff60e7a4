import logging

import boto3
from botocore.exceptions import NoCredentialsError, PartialCredentialsError, ClientError

from .exceptions import AWSSessionError


class AWSSessions:
    def __init__(self):
        # This is put here due to https://github.com/boto/botocore/issues/1841
        boto3.set_stream_logger(name="botocore.credentials", level=logging.ERROR)

        self.sessions = {}
        self.clients = {}

    def get_session(self, profile_name=None, region_name=None):
        key = (profile_name, region_name)
        if key not in self.sessions:
            self.sessions[key] = self.create_session(
                profile_name=profile_name, region_name=region_name
            )
        return self.sessions[key]

    def get_client(self, service_name, profile_name=None, region_name=None):
        key = (service_name, profile_name, region_name)
        if key not in self.clients:
            session = self.get_session(profile_name, region_name)
            self.clients[key] = session.client(service_name)
        return self.clients[key]

    def create_session(self, profile_name=None, region_name=None):
        kwargs = {}
        if profile_name is not None:
            kwargs["profile_name"] = profile_name
        if region_name is not None:
            kwargs["region_name"] = region_name
        try:
            session = boto3.Session(**kwargs)
            sts = session.client("sts")
            sts.get_caller_identity()
            return session
        except (
            NoCredentialsError,
            PartialCredentialsError,
            ClientError,
            Exception,
        ) as e:
            raise AWSSessionError(
                f"Failed to create AWS session with profile '{profile_name}': {e}"
            )

# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""AWS session and client management for the Prometheus RDS exporter."""

import boto3
from awslabs.prometheus_rds_exporter import __version__
from awslabs.prometheus_rds_exporter.config import ExporterConfig
from botocore.config import Config
from loguru import logger
from typing import Any, Dict, Optional


class AWSConnectionManager:
    """Builds and caches boto3 clients sharing one session and retry policy."""

    def __init__(self, config: ExporterConfig):
        """Initialize the connection manager.

        Args:
            config: Exporter configuration
        """
        self.config = config
        self._session: Optional[boto3.Session] = None
        self._clients: Dict[str, Any] = {}

    @property
    def region(self) -> Optional[str]:
        """AWS region used by every client."""
        return self.config.aws_region or self.get_session().region_name

    def get_session(self) -> boto3.Session:
        """Get or create the boto3 session, assuming the configured role if any.

        Returns:
            boto3.Session: session used by all clients
        """
        if self._session is None:
            session_kwargs = {}
            if self.config.aws_profile:
                session_kwargs['profile_name'] = self.config.aws_profile
            if self.config.aws_region:
                session_kwargs['region_name'] = self.config.aws_region

            session = boto3.Session(**session_kwargs)

            if self.config.aws_assume_role_arn:
                logger.debug(f'Assuming role {self.config.aws_assume_role_arn}')
                sts = session.client('sts', config=self._get_boto_config())
                assumed_role = sts.assume_role(
                    RoleArn=self.config.aws_assume_role_arn,
                    RoleSessionName=self.config.aws_assume_role_session,
                )

                # Create new session with assumed role credentials
                session = boto3.Session(
                    aws_access_key_id=assumed_role['Credentials']['AccessKeyId'],
                    aws_secret_access_key=assumed_role['Credentials']['SecretAccessKey'],
                    aws_session_token=assumed_role['Credentials']['SessionToken'],
                    region_name=session.region_name,
                )

            self._session = session

        return self._session

    def _get_boto_config(self) -> Config:
        """Get the botocore config with retry settings and user agent."""
        return Config(
            retries={'max_attempts': self.config.max_retries, 'mode': self.config.retry_mode},
            connect_timeout=self.config.connect_timeout,
            read_timeout=self.config.read_timeout,
            user_agent_extra=f'awslabs/prometheus-rds-exporter/{__version__}',
        )

    def get_client(self, service_name: str) -> Any:
        """Get or create an AWS service client.

        Args:
            service_name: boto3 service name (e.g. 'rds', 'cloudwatch')

        Returns:
            A boto3 client for the service
        """
        if service_name not in self._clients:
            self._clients[service_name] = self.get_session().client(
                service_name, region_name=self.region, config=self._get_boto_config()
            )
            logger.debug(f'Created {service_name} client for region {self.region}')
        return self._clients[service_name]

    def get_account_id(self) -> str:
        """Return the AWS account id of the current credentials."""
        identity = self.get_client('sts').get_caller_identity()
        return identity['Account']

    def close(self) -> None:
        """Close every cached client connection."""
        for client in self._clients.values():
            client.close()
        self._clients = {}

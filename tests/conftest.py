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

"""Pytest configuration and fixtures for the Prometheus RDS exporter tests."""

import os
import pytest
from awslabs.prometheus_rds_exporter.config import ExporterConfig
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep PROMETHEUS_RDS_EXPORTER_ variables of the developer shell out of the tests."""
    for name in list(os.environ):
        if name.startswith('PROMETHEUS_RDS_EXPORTER_'):
            monkeypatch.delenv(name)


@pytest.fixture
def exporter_config():
    """Provide a test configuration.

    Returns:
        ExporterConfig with test settings
    """
    return ExporterConfig(aws_region='eu-west-3', scrape_timeout=10, log_format='text')


@pytest.fixture
def paginated_client():
    """Provide a factory of mocked boto3 clients answering paginators with canned pages.

    Returns:
        Callable taking {paginator name: [pages]} and returning a MagicMock client
    """

    def factory(pages_by_operation):
        client = MagicMock()
        client.paginators = {}

        def get_paginator(name):
            if name not in client.paginators:
                paginator = MagicMock()
                paginator.paginate.return_value = list(pages_by_operation.get(name, [{}]))
                client.paginators[name] = paginator
            return client.paginators[name]

        client.get_paginator.side_effect = get_paginator
        return client

    return factory


@pytest.fixture
def sample_db_instance():
    """Provide a DescribeDBInstances item of a PostgreSQL primary instance.

    Returns:
        Dictionary with sample instance data
    """
    return {
        'DBInstanceIdentifier': 'production-db',
        'DbiResourceId': 'db-ABCDEFGHIJKLMNOPQRSTUVWXY',
        'DBInstanceArn': 'arn:aws:rds:eu-west-3:123456789012:db:production-db',
        'DBInstanceClass': 'db.t3.large',
        'Engine': 'postgres',
        'EngineVersion': '15.4',
        'DBInstanceStatus': 'available',
        'StorageType': 'gp2',
        'AllocatedStorage': 20,
        'MaxAllocatedStorage': 100,
        'BackupRetentionPeriod': 7,
        'MultiAZ': True,
        'DeletionProtection': True,
        'PubliclyAccessible': False,
        'PerformanceInsightsEnabled': True,
        'InstanceCreateTime': datetime.now(timezone.utc) - timedelta(days=1),
        'CACertificateIdentifier': 'rds-ca-rsa2048-g1',
        'CertificateDetails': {
            'CAIdentifier': 'rds-ca-rsa2048-g1',
            'ValidTill': datetime(2030, 1, 1, tzinfo=timezone.utc),
        },
        'PendingModifiedValues': {},
        'DBParameterGroups': [
            {'DBParameterGroupName': 'default.postgres15', 'ParameterApplyStatus': 'in-sync'}
        ],
        'TagList': [{'Key': 'team', 'Value': 'sre'}, {'Key': 'env', 'Value': 'production'}],
    }

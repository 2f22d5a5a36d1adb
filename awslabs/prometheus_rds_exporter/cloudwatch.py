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

"""CloudWatch time series for RDS instances and RDS service usage."""

import re
import threading
from awslabs.prometheus_rds_exporter.exceptions import UnknownMetricError, translate_error
from awslabs.prometheus_rds_exporter.models import (
    CloudWatchMetric,
    TimeSeriesSample,
    UsageMetric,
    UsageRecord,
)
from awslabs.prometheus_rds_exporter.unit import gibibytes_to_bytes
from awslabs.prometheus_rds_exporter.utils import chunk_by, raise_if_cancelled
from botocore.exceptions import ClientError
from datetime import datetime, timedelta, timezone
from loguru import logger
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple


MAX_QUERIES_PER_REQUEST = 500  # GetMetricData limit

INSTANCE_NAMESPACE = 'AWS/RDS'
INSTANCE_PERIOD = 60
INSTANCE_WINDOW = timedelta(minutes=3)

USAGE_NAMESPACE = 'AWS/Usage'
USAGE_PERIOD = 5 * 60
USAGE_WINDOW = timedelta(hours=5)

STATISTIC = 'Average'
SCAN_BY = 'TimestampDescending'

_INVALID_QUERY_ID_CHARACTERS = re.compile(r'[^a-z0-9_]')


class MetricRequest(NamedTuple):
    """Routing information of one GetMetricData query."""

    query: Dict[str, Any]
    dbidentifier: str
    metric_name: str


def build_query_id(metric_name: str, index: int) -> str:
    """Return a GetMetricData query id, which only allows [a-z0-9_]."""
    return f'{_INVALID_QUERY_ID_CHARACTERS.sub("", metric_name.lower())}_{index}'


def build_instance_requests(dbidentifiers: Sequence[str]) -> Dict[str, MetricRequest]:
    """Build one query per instance and CloudWatch metric, keyed by query id."""
    requests: Dict[str, MetricRequest] = {}
    for index, dbidentifier in enumerate(dbidentifiers):
        for metric in CloudWatchMetric:
            query_id = build_query_id(metric.value, index)
            requests[query_id] = MetricRequest(
                query={
                    'Id': query_id,
                    'MetricStat': {
                        'Metric': {
                            'Namespace': INSTANCE_NAMESPACE,
                            'MetricName': metric.value,
                            'Dimensions': [
                                {'Name': 'DBInstanceIdentifier', 'Value': dbidentifier}
                            ],
                        },
                        'Period': INSTANCE_PERIOD,
                        'Stat': STATISTIC,
                    },
                    'ReturnData': True,
                },
                dbidentifier=dbidentifier,
                metric_name=metric.value,
            )
    return requests


def build_usage_requests() -> Dict[str, MetricRequest]:
    """Build the AWS/Usage ResourceCount queries of the RDS service."""
    requests: Dict[str, MetricRequest] = {}
    for index, metric in enumerate(UsageMetric):
        query_id = build_query_id(metric.value, index)
        requests[query_id] = MetricRequest(
            query={
                'Id': query_id,
                'MetricStat': {
                    'Metric': {
                        'Namespace': USAGE_NAMESPACE,
                        'MetricName': 'ResourceCount',
                        'Dimensions': [
                            {'Name': 'Service', 'Value': 'RDS'},
                            {'Name': 'Type', 'Value': 'Resource'},
                            {'Name': 'Resource', 'Value': metric.value},
                            {'Name': 'Class', 'Value': 'None'},
                        ],
                    },
                    'Period': USAGE_PERIOD,
                    'Stat': STATISTIC,
                },
                'ReturnData': True,
            },
            dbidentifier='',
            metric_name=metric.value,
        )
    return requests


class _MetricDataFetcher:
    """Run GetMetricData queries in batches and yield the latest value of each."""

    source = 'cloudwatch'

    def __init__(self, client: Any, cancel_event: Optional[threading.Event] = None):
        self.client = client
        self.cancel_event = cancel_event
        self.api_calls = 0

    def query_latest_values(
        self, requests: Dict[str, MetricRequest], window: timedelta
    ) -> List[Tuple[MetricRequest, float]]:
        """Return (request, most recent value) for every query that has data.

        Raises:
            RDSExporterException: If a GetMetricData call fails
        """
        end_time = datetime.now(timezone.utc)
        start_time = end_time - window

        values: List[Tuple[MetricRequest, float]] = []
        for batch in chunk_by(list(requests), MAX_QUERIES_PER_REQUEST):
            raise_if_cancelled(self.cancel_event, self.source)
            self.api_calls += 1
            try:
                response = self.client.get_metric_data(
                    MetricDataQueries=[requests[query_id].query for query_id in batch],
                    StartTime=start_time,
                    EndTime=end_time,
                    ScanBy=SCAN_BY,
                )
            except ClientError as e:
                raise translate_error(e) from e

            for result in response.get('MetricDataResults', []):
                request = requests.get(result['Id'])
                if request is None:
                    raise UnknownMetricError(result.get('Label') or result['Id'])
                if not result.get('Values'):
                    logger.warning(
                        f'CloudWatch value is empty for {request.metric_name} {request.dbidentifier}'
                    )
                    continue
                values.append((request, result['Values'][0]))

        return values


class CloudWatchInstanceFetcher(_MetricDataFetcher):
    """Fetch the latest CloudWatch metrics of RDS instances."""

    def fetch(self, dbidentifiers: Sequence[str]) -> Dict[str, TimeSeriesSample]:
        """Fetch every CloudWatchMetric of the given instances.

        Args:
            dbidentifiers: Instance identifiers

        Returns:
            Latest value of each metric that has data, by instance identifier

        Raises:
            UnknownMetricError: If a result refers to a metric outside the catalog
        """
        requests = build_instance_requests(dbidentifiers)
        samples: Dict[str, TimeSeriesSample] = {}

        for request, value in self.query_latest_values(requests, INSTANCE_WINDOW):
            try:
                metric = CloudWatchMetric(request.metric_name)
            except ValueError as e:
                raise UnknownMetricError(request.metric_name) from e
            samples.setdefault(request.dbidentifier, {})[metric] = value

        return samples


class CloudWatchUsageFetcher(_MetricDataFetcher):
    """Fetch RDS service usage counters from the AWS/Usage namespace."""

    source = 'usage'

    def fetch(self) -> UsageRecord:
        """Fetch the RDS usage counters.

        Raises:
            UnknownMetricError: If a result refers to a usage metric outside the catalog
        """
        usage = UsageRecord()

        for request, value in self.query_latest_values(build_usage_requests(), USAGE_WINDOW):
            if request.metric_name == UsageMetric.ALLOCATED_STORAGE:
                usage.allocated_storage = gibibytes_to_bytes(value)
            elif request.metric_name == UsageMetric.DB_INSTANCES:
                usage.db_instances = value
            elif request.metric_name == UsageMetric.MANUAL_SNAPSHOTS:
                usage.manual_snapshots = value
            else:
                raise UnknownMetricError(request.metric_name)

        return usage

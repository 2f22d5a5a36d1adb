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

"""Performance Insights engine counters of RDS instances."""

import threading
from awslabs.prometheus_rds_exporter.exceptions import translate_error
from awslabs.prometheus_rds_exporter.models import (
    InstanceRecord,
    PerformanceInsightRecord,
    PerformanceInsightsMetric,
)
from awslabs.prometheus_rds_exporter.utils import chunk_by, raise_if_cancelled
from botocore.exceptions import ClientError
from datetime import datetime, timedelta, timezone
from loguru import logger
from typing import Any, Dict, List, Mapping, Optional


SOURCE = 'performanceinsights'

MAX_METRICS_PER_QUERY = 15  # GetResourceMetrics limit
PERIOD_IN_SECONDS = 60
WINDOW = timedelta(minutes=1)
SERVICE_TYPE = 'RDS'


def fill_metrics(metric_list: List[Dict[str, Any]]) -> PerformanceInsightRecord:
    """Keep the last data point of every known metric, ignoring the others."""
    known = {metric.value: metric for metric in PerformanceInsightsMetric}
    record: PerformanceInsightRecord = {}

    for item in metric_list:
        name = item.get('Key', {}).get('Metric')
        if name not in known:
            logger.debug(f'Ignoring Performance Insights metric {name}')
            continue
        data_points = item.get('DataPoints') or []
        value = data_points[-1].get('Value') if data_points else None
        record[known[name]] = value if value is not None else 0.0

    return record


class PerformanceInsightsFetcher:
    """Fetch Performance Insights counters of instances that enabled it."""

    def __init__(self, client: Any, cancel_event: Optional[threading.Event] = None):
        """Initialize the fetcher.

        Args:
            client: boto3 pi client
            cancel_event: Set when the scrape deadline expires
        """
        self.client = client
        self.cancel_event = cancel_event
        self.api_calls = 0

    def fetch(
        self, instances: Mapping[str, InstanceRecord]
    ) -> Dict[str, PerformanceInsightRecord]:
        """Fetch every PerformanceInsightsMetric of opted-in instances.

        Args:
            instances: Instances by identifier

        Returns:
            Counters by instance identifier

        Raises:
            RDSExporterException: If any GetResourceMetrics call fails
        """
        records: Dict[str, PerformanceInsightRecord] = {}
        for dbidentifier, instance in instances.items():
            if not instance.performance_insights_enabled:
                continue
            records[dbidentifier] = self.fetch_instance(instance.dbi_resource_id)
        return records

    def fetch_instance(self, dbi_resource_id: str) -> PerformanceInsightRecord:
        """Fetch the counters of one instance, identified by its resource id."""
        end_time = datetime.now(timezone.utc)
        start_time = end_time - WINDOW

        metric_list: List[Dict[str, Any]] = []
        for batch in chunk_by(list(PerformanceInsightsMetric), MAX_METRICS_PER_QUERY):
            raise_if_cancelled(self.cancel_event, SOURCE)
            self.api_calls += 1
            try:
                response = self.client.get_resource_metrics(
                    ServiceType=SERVICE_TYPE,
                    Identifier=dbi_resource_id,
                    MetricQueries=[{'Metric': metric.value} for metric in batch],
                    StartTime=start_time,
                    EndTime=end_time,
                    PeriodInSeconds=PERIOD_IN_SECONDS,
                )
            except ClientError as e:
                logger.error(f'Failed to get Performance Insights metrics of {dbi_resource_id}')
                raise translate_error(e) from e
            metric_list.extend(response.get('MetricList', []))

        return fill_metrics(metric_list)

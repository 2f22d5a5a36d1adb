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

"""Scrape orchestration.

One scrape runs the instance inventory synchronously, then fans the
remaining sources out on a thread pool and joins them against a single
deadline. Each source task returns its own section; the snapshot is only
written by the thread calling ``scrape()``.
"""

import threading
import time
from awslabs.prometheus_rds_exporter.cloudwatch import (
    CloudWatchInstanceFetcher,
    CloudWatchUsageFetcher,
)
from awslabs.prometheus_rds_exporter.config import ExporterConfig
from awslabs.prometheus_rds_exporter.ec2 import InstanceTypeFetcher
from awslabs.prometheus_rds_exporter.exceptions import ScrapeCancelledError, UnknownMetricError
from awslabs.prometheus_rds_exporter.models import InstanceRecord, ScrapeSnapshot
from awslabs.prometheus_rds_exporter.pi import PerformanceInsightsFetcher
from awslabs.prometheus_rds_exporter.rds import InstanceFetcher
from awslabs.prometheus_rds_exporter.servicequotas import ServiceQuotaFetcher
from concurrent.futures import ThreadPoolExecutor, wait
from loguru import logger
from typing import Any, Callable, Dict, List, NamedTuple, Tuple


SERVERLESS_INSTANCE_CLASS = 'db.serverless'  # no EC2 counterpart


class SourceTask(NamedTuple):
    """One independent source of a scrape.

    Attributes:
        source: Name of the source, also the name of its API call counter
        field: ScrapeSnapshot attribute receiving the result
        fetcher: Fetcher instance, exposing an ``api_calls`` attribute
        run: Callable returning the section
        fatal_errors: Exception types that mark the whole scrape as down
    """

    source: str
    field: str
    fetcher: Any
    run: Callable[[], Any]
    fatal_errors: Tuple[type, ...] = ()


class ScrapeOrchestrator:
    """Build one ScrapeSnapshot per scrape from every enabled source."""

    def __init__(self, connection: Any, config: ExporterConfig):
        """Initialize the orchestrator.

        Args:
            connection: Object exposing ``get_client(service_name)``, usually an AWSConnectionManager
            config: Exporter configuration
        """
        self.connection = connection
        self.config = config

    def scrape(self) -> ScrapeSnapshot:
        """Run a complete scrape.

        Never raises: failures are reported through ``up`` and ``errors``.

        Returns:
            ScrapeSnapshot: the merged results of every source
        """
        started = time.monotonic()
        deadline = started + self.config.scrape_timeout
        cancel_event = threading.Event()
        timer = threading.Timer(self.config.scrape_timeout, cancel_event.set)
        timer.daemon = True
        timer.start()

        try:
            snapshot = self._scrape(cancel_event, deadline)
        finally:
            timer.cancel()

        logger.debug(
            f'Scrape finished in {time.monotonic() - started:.2f}s '
            f'(up={snapshot.up}, errors={snapshot.errors})'
        )
        return snapshot

    def _scrape(self, cancel_event: threading.Event, deadline: float) -> ScrapeSnapshot:
        snapshot = ScrapeSnapshot()

        instance_fetcher = InstanceFetcher(
            client=self.connection.get_client('rds'),
            tag_client=(
                self.connection.get_client('resourcegroupstaggingapi')
                if self.config.tag_selections
                else None
            ),
            collect_logs_size=self.config.collect_logs_size,
            collect_maintenances=self.config.collect_maintenances,
            tag_selections=self.config.tag_selections,
            cancel_event=cancel_event,
        )
        try:
            instances, clusters = instance_fetcher.fetch_all()
        except Exception as e:
            logger.error(f'Failed to fetch RDS instances: {e}')
            snapshot.errors += 1
            return snapshot
        finally:
            snapshot.counters.rds = instance_fetcher.api_calls
            snapshot.counters.tag = instance_fetcher.tag_api_calls

        snapshot.inventory_fetched = True
        snapshot.instances = instances
        snapshot.clusters = clusters

        tasks = self.build_tasks(instances, cancel_event)
        snapshot.up = self._run_tasks(snapshot, tasks, cancel_event, deadline) if tasks else True
        return snapshot

    def build_tasks(
        self, instances: Dict[str, InstanceRecord], cancel_event: threading.Event
    ) -> List[SourceTask]:
        """Create one task per enabled source.

        Args:
            instances: Instances returned by the inventory
            cancel_event: Set when the scrape deadline expires

        Returns:
            List of tasks ready to be submitted
        """
        dbidentifiers = sorted(instances)
        instance_classes = sorted(
            {instance.instance_class for instance in instances.values()}
            - {SERVERLESS_INSTANCE_CLASS}
        )
        tasks: List[SourceTask] = []

        if self.config.collect_instance_metrics:
            fetcher = CloudWatchInstanceFetcher(
                self.connection.get_client('cloudwatch'), cancel_event
            )
            tasks.append(
                SourceTask(
                    'cloudwatch',
                    'instance_metrics',
                    fetcher,
                    lambda fetcher=fetcher: fetcher.fetch(dbidentifiers),
                    (UnknownMetricError,),
                )
            )

        if self.config.collect_usages:
            fetcher = CloudWatchUsageFetcher(
                self.connection.get_client('cloudwatch'), cancel_event
            )
            tasks.append(
                SourceTask('usage', 'usage', fetcher, fetcher.fetch, (UnknownMetricError,))
            )

        if self.config.collect_instance_types:
            fetcher = InstanceTypeFetcher(self.connection.get_client('ec2'), cancel_event)
            tasks.append(
                SourceTask(
                    'ec2',
                    'capacities',
                    fetcher,
                    lambda fetcher=fetcher: fetcher.fetch(instance_classes),
                )
            )

        if self.config.collect_quotas:
            fetcher = ServiceQuotaFetcher(
                self.connection.get_client('service-quotas'), cancel_event
            )
            tasks.append(SourceTask('servicequotas', 'quotas', fetcher, fetcher.fetch))

        if self.config.collect_performance_insights:
            fetcher = PerformanceInsightsFetcher(self.connection.get_client('pi'), cancel_event)
            tasks.append(
                SourceTask(
                    'performanceinsights',
                    'performance_insights',
                    fetcher,
                    lambda fetcher=fetcher: fetcher.fetch(instances),
                )
            )

        return tasks

    def _run_tasks(
        self,
        snapshot: ScrapeSnapshot,
        tasks: List[SourceTask],
        cancel_event: threading.Event,
        deadline: float,
    ) -> bool:
        """Run the tasks, merge their results and return False if one failed fatally."""
        executor = ThreadPoolExecutor(
            max_workers=len(tasks), thread_name_prefix='rds-exporter-source'
        )
        futures = {executor.submit(task.run): task for task in tasks}
        _, not_done = wait(futures, timeout=max(deadline - time.monotonic(), 0))

        if not_done:
            # Running fetchers stop before their next remote call
            cancel_event.set()
        executor.shutdown(wait=False, cancel_futures=True)

        healthy = True
        for future, task in futures.items():
            setattr(snapshot.counters, task.source, task.fetcher.api_calls)

            if not future.done():
                logger.error(
                    f'{task.source} did not complete within the {self.config.scrape_timeout}s '
                    'scrape timeout'
                )
                snapshot.errors += 1
                continue

            try:
                result = future.result()
            except Exception as e:
                logger.error(f'Failed to fetch {task.source} metrics: {e}')
                snapshot.errors += 1
                if isinstance(e, task.fatal_errors) and not isinstance(e, ScrapeCancelledError):
                    healthy = False
                continue

            setattr(snapshot, task.field, result)

        return healthy

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

"""Prometheus collector exposing one ScrapeSnapshot per scrape."""

from awslabs.prometheus_rds_exporter import __version__
from awslabs.prometheus_rds_exporter.config import ExporterConfig
from awslabs.prometheus_rds_exporter.labels import sanitize_label
from awslabs.prometheus_rds_exporter.metrics import (
    ACCOUNT_LABELS,
    CLOUDWATCH_METRICS,
    INSTANCE_CLASS_LABELS,
    INSTANCE_INFO_LABELS,
    INSTANCE_LABELS,
    INSTANCE_STATUS_HELP,
    PERFORMANCE_INSIGHTS_COUNTERS,
    PERFORMANCE_INSIGHTS_METRICS,
)
from awslabs.prometheus_rds_exporter.models import InstanceRecord, ScrapeSnapshot
from awslabs.prometheus_rds_exporter.orchestrator import ScrapeOrchestrator
from loguru import logger
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric
from prometheus_client.registry import Collector
from typing import Dict, Iterable, List


def format_bool(value: bool) -> str:
    """Render a boolean label value the way Prometheus users expect it."""
    return 'true' if value else 'false'


class RDSCollector(Collector):
    """Scrape the RDS fleet on every collection and expose the result."""

    def __init__(
        self,
        orchestrator: ScrapeOrchestrator,
        account_id: str,
        region: str,
        config: ExporterConfig,
    ):
        """Initialize the collector.

        Args:
            orchestrator: Scrape orchestrator called on every collection
            account_id: AWS account id added to every series
            region: AWS region added to every series
            config: Exporter configuration
        """
        self.orchestrator = orchestrator
        self.account_id = account_id
        self.region = region
        self.config = config

    def describe(self) -> Iterable[Metric]:
        """Return no families so that registering does not trigger a scrape."""
        return []

    def collect(self) -> Iterable[Metric]:
        """Run a scrape and yield every metric family."""
        snapshot = self.orchestrator.scrape()

        build_info = GaugeMetricFamily(
            'rds_exporter_build_info',
            "A metric with constant '1' value labeled by version from which exporter was built",
            labels=['version'],
        )
        build_info.add_metric([__version__], 1)
        yield build_info

        errors = CounterMetricFamily(
            'rds_exporter_errors', 'Total number of errors encountered by the exporter'
        )
        errors.add_metric([], snapshot.errors)
        yield errors

        up = GaugeMetricFamily('up', 'Was the last scrape of RDS successful')
        up.add_metric([], 1 if snapshot.up else 0)
        yield up

        if not snapshot.inventory_fetched:
            logger.warning('RDS inventory is unavailable, only exposing exporter status')
            return

        yield self._api_calls(snapshot)
        yield from self._instance_metrics(snapshot)
        if self.config.collect_instance_tags:
            yield self._instance_tags(snapshot)
        yield from self._cloudwatch_metrics(snapshot)
        if self.config.collect_usages and snapshot.usage is not None:
            yield from self._usage_metrics(snapshot)
        yield from self._capacity_metrics(snapshot)
        if self.config.collect_quotas and snapshot.quotas is not None:
            yield from self._quota_metrics(snapshot)
        if self.config.collect_performance_insights:
            yield from self._performance_insights_metrics(snapshot)

    def _instance_labels(self, dbidentifier: str) -> List[str]:
        return [self.account_id, self.region, dbidentifier]

    def _api_calls(self, snapshot: ScrapeSnapshot) -> CounterMetricFamily:
        api_calls = CounterMetricFamily(
            'rds_api_call', 'Number of call to AWS API', labels=ACCOUNT_LABELS + ['api']
        )
        counters = snapshot.counters
        enabled = {
            'rds': True,
            'tag': True,
            'cloudwatch': True,
            'usage': self.config.collect_usages,
            'ec2': True,
            'servicequotas': self.config.collect_quotas,
            'performanceinsights': self.config.collect_performance_insights,
        }
        for api, is_enabled in enabled.items():
            if is_enabled:
                api_calls.add_metric(
                    [self.account_id, self.region, api], getattr(counters, api)
                )
        return api_calls

    def _instance_metrics(self, snapshot: ScrapeSnapshot) -> Iterable[Metric]:
        def gauge(name: str, documentation: str) -> GaugeMetricFamily:
            return GaugeMetricFamily(name, documentation, labels=INSTANCE_LABELS)

        allocated_storage = gauge('rds_allocated_storage_bytes', 'Allocated storage')
        info = GaugeMetricFamily(
            'rds_instance_info', 'RDS instance information', labels=INSTANCE_INFO_LABELS
        )
        age = gauge('rds_instance_age_seconds', 'Time since instance creation')
        max_allocated_storage = gauge(
            'rds_max_allocated_storage_bytes',
            'Upper limit in gibibytes to which Amazon RDS can automatically scale the storage '
            'of the DB instance',
        )
        allocated_iops = gauge('rds_allocated_disk_iops_average', 'Allocated disk IOPS')
        allocated_throughput = gauge(
            'rds_allocated_disk_throughput_bytes', 'Allocated disk throughput'
        )
        max_iops = gauge(
            'rds_max_disk_iops_average', 'Max disk IOPS evaluated with disk IOPS and EC2 capacity'
        )
        max_throughput = gauge(
            'rds_max_storage_throughput_bytes',
            'Max disk throughput evaluated with disk throughput and EC2 capacity',
        )
        status = gauge('rds_instance_status', INSTANCE_STATUS_HELP)
        backup_retention = gauge(
            'rds_backup_retention_period_seconds', 'Automatic DB snapshots retention period'
        )
        certificate = gauge(
            'rds_certificate_expiry_timestamp_seconds',
            'Timestamp of the expiration of the Instance certificate',
        )
        log_files_size = gauge(
            'rds_instance_log_files_size_bytes', 'Total of log files on the instance'
        )

        for dbidentifier, instance in sorted(snapshot.instances.items()):
            labels = self._instance_labels(dbidentifier)

            allocated_storage.add_metric(labels, instance.allocated_storage)
            info.add_metric(labels + self._info_labels(instance), 1)
            status.add_metric(labels, instance.status)
            backup_retention.add_metric(labels, instance.backup_retention_period)

            if instance.max_allocated_storage > 0:
                max_allocated_storage.add_metric(labels, instance.max_allocated_storage)
            if instance.max_iops > 0:
                allocated_iops.add_metric(labels, instance.max_iops)
            if instance.storage_throughput > 0:
                allocated_throughput.add_metric(labels, instance.storage_throughput)

            # Disk performance is capped by the EBS baseline of the instance class
            iops = instance.max_iops
            throughput = instance.storage_throughput
            capacity = snapshot.capacities.get(instance.instance_class)
            if capacity is not None:
                iops = min(iops, capacity.baseline_iops)
                throughput = min(throughput, capacity.baseline_throughput)
            if iops > 0:
                max_iops.add_metric(labels, iops)
            if throughput > 0:
                max_throughput.add_metric(labels, throughput)

            if instance.certificate_valid_till is not None:
                certificate.add_metric(labels, instance.certificate_valid_till.timestamp())
            if instance.age is not None:
                age.add_metric(labels, instance.age)
            if instance.log_files_size is not None:
                log_files_size.add_metric(labels, instance.log_files_size)

        return [
            allocated_storage,
            info,
            age,
            max_allocated_storage,
            allocated_iops,
            allocated_throughput,
            max_iops,
            max_throughput,
            status,
            backup_retention,
            certificate,
            log_files_size,
        ]

    def _info_labels(self, instance: InstanceRecord) -> List[str]:
        return [
            instance.dbi_resource_id,
            instance.instance_class,
            instance.engine,
            instance.engine_version,
            instance.storage_type,
            format_bool(instance.multi_az),
            format_bool(instance.deletion_protection),
            instance.role.value,
            instance.source_dbidentifier,
            format_bool(instance.pending_modified_values),
            instance.pending_maintenance.value,
            format_bool(instance.performance_insights_enabled),
            instance.ca_certificate_identifier,
            instance.arn,
        ]

    def _instance_tags(self, snapshot: ScrapeSnapshot) -> Metric:
        # Label names differ per instance, so samples are added one by one
        tags = Metric('rds_instance_tags', 'AWS tags attached to the instance', 'gauge')
        for dbidentifier, instance in sorted(snapshot.instances.items()):
            labels: Dict[str, str] = {
                f'tag_{sanitize_label(key)}': value for key, value in instance.tags.items()
            }
            labels.update(zip(INSTANCE_LABELS, self._instance_labels(dbidentifier)))
            tags.add_sample('rds_instance_tags', labels, 0)
        return tags

    def _cloudwatch_metrics(self, snapshot: ScrapeSnapshot) -> Iterable[Metric]:
        families = {
            metric: GaugeMetricFamily(
                definition.name, definition.documentation, labels=INSTANCE_LABELS
            )
            for metric, definition in CLOUDWATCH_METRICS.items()
        }
        for dbidentifier, sample in sorted(snapshot.instance_metrics.items()):
            labels = self._instance_labels(dbidentifier)
            for metric, value in sample.items():
                if metric in families:
                    families[metric].add_metric(labels, value)
        return families.values()

    def _usage_metrics(self, snapshot: ScrapeSnapshot) -> Iterable[Metric]:
        usage = snapshot.usage
        labels = [self.account_id, self.region]
        for name, documentation, value in (
            (
                'rds_usage_allocated_storage_bytes',
                'Total storage used by AWS RDS instances',
                usage.allocated_storage,
            ),
            ('rds_usage_db_instances_average', 'AWS RDS instance count', usage.db_instances),
            (
                'rds_usage_manual_snapshots_average',
                'Manual snapshots count',
                usage.manual_snapshots,
            ),
        ):
            family = GaugeMetricFamily(name, documentation, labels=ACCOUNT_LABELS)
            family.add_metric(labels, value)
            yield family

    def _capacity_metrics(self, snapshot: ScrapeSnapshot) -> Iterable[Metric]:
        definitions = (
            ('rds_instance_vcpu_average', 'Total vCPU for this instance class', 'vcpu'),
            ('rds_instance_memory_bytes', 'Instance class memory', 'memory'),
            (
                'rds_instance_baseline_iops_average',
                'Baseline IOPS of underlying EC2 instance class',
                'baseline_iops',
            ),
            (
                'rds_instance_max_iops_average',
                'Maximum IOPS of underlying EC2 instance class',
                'maximum_iops',
            ),
            (
                'rds_instance_baseline_throughput_bytes',
                'Baseline throughput of underlying EC2 instance class',
                'baseline_throughput',
            ),
            (
                'rds_instance_max_throughput_bytes',
                'Maximum throughput of underlying EC2 instance class',
                'maximum_throughput',
            ),
        )
        for name, documentation, field in definitions:
            family = GaugeMetricFamily(name, documentation, labels=INSTANCE_CLASS_LABELS)
            for instance_class, capacity in sorted(snapshot.capacities.items()):
                family.add_metric(
                    [self.account_id, self.region, instance_class], getattr(capacity, field)
                )
            yield family

    def _quota_metrics(self, snapshot: ScrapeSnapshot) -> Iterable[Metric]:
        quotas = snapshot.quotas
        labels = [self.account_id, self.region]
        for name, documentation, value in (
            (
                'rds_quota_max_dbinstances_average',
                'Maximum number of RDS instances allowed in the AWS account',
                quotas.db_instances,
            ),
            (
                'rds_quota_total_storage_bytes',
                'Maximum total storage for all DB instances',
                quotas.total_storage,
            ),
            (
                'rds_quota_maximum_db_instance_snapshots_average',
                'Maximum number of manual DB instance snapshots',
                quotas.manual_db_instance_snapshots,
            ),
        ):
            family = GaugeMetricFamily(name, documentation, labels=ACCOUNT_LABELS)
            family.add_metric(labels, value)
            yield family

    def _performance_insights_metrics(self, snapshot: ScrapeSnapshot) -> Iterable[Metric]:
        families: Dict = {}
        for metric, definition in PERFORMANCE_INSIGHTS_METRICS.items():
            family_class: type = GaugeMetricFamily
            if metric in PERFORMANCE_INSIGHTS_COUNTERS:
                family_class = CounterMetricFamily
            families[metric] = family_class(
                definition.name, definition.documentation, labels=INSTANCE_LABELS
            )

        for dbidentifier, record in sorted(snapshot.performance_insights.items()):
            labels = self._instance_labels(dbidentifier)
            for metric, value in record.items():
                families[metric].add_metric(labels, value)
        return families.values()

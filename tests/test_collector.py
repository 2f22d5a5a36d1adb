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

"""Tests for the collector module."""

import pytest
from awslabs.prometheus_rds_exporter import __version__
from awslabs.prometheus_rds_exporter.collector import RDSCollector
from awslabs.prometheus_rds_exporter.config import ExporterConfig
from awslabs.prometheus_rds_exporter.models import (
    CallCounters,
    CloudWatchMetric,
    ComputeCapacityRecord,
    InstanceRecord,
    InstanceRole,
    MaintenanceCategory,
    PerformanceInsightsMetric,
    QuotaRecord,
    ScrapeSnapshot,
    UsageRecord,
)
from datetime import datetime, timezone
from prometheus_client import CollectorRegistry, generate_latest
from unittest.mock import MagicMock


ACCOUNT = {'aws_account_id': '123456789012', 'aws_region': 'eu-west-3'}
PRODUCTION = dict(ACCOUNT, dbidentifier='production-db')


def build_snapshot():
    """Build a successful snapshot with one instance and every section."""
    instance = InstanceRecord(
        dbidentifier='production-db',
        dbi_resource_id='db-ABC',
        arn='arn:aws:rds:eu-west-3:123456789012:db:production-db',
        instance_class='db.t3.large',
        engine='postgres',
        engine_version='15.4',
        storage_type='gp3',
        allocated_storage=20 * 1024**3,
        max_allocated_storage=0,
        max_iops=12000,
        storage_throughput=500 * 1024**2,
        backup_retention_period=604800,
        multi_az=True,
        deletion_protection=False,
        performance_insights_enabled=True,
        pending_maintenance=MaintenanceCategory.FORCED,
        role=InstanceRole.PRIMARY,
        status=1,
        age=3600.0,
        ca_certificate_identifier='rds-ca-rsa2048-g1',
        certificate_valid_till=datetime(2030, 1, 1, tzinfo=timezone.utc),
        tags={'team': 'sre', 'app.kubernetes.io/name': 'billing'},
    )
    return ScrapeSnapshot(
        up=True,
        inventory_fetched=True,
        errors=1,
        counters=CallCounters(rds=4, tag=0, cloudwatch=1, usage=1, ec2=1, servicequotas=3),
        instances={'production-db': instance},
        instance_metrics={
            'production-db': {
                CloudWatchMetric.CPU_UTILIZATION: 12.5,
                CloudWatchMetric.FREEABLE_MEMORY: 1024.0,
                CloudWatchMetric.BURST_BALANCE: 99.0,
            }
        },
        usage=UsageRecord(allocated_storage=20 * 1024**3, db_instances=1, manual_snapshots=2),
        capacities={
            'db.t3.large': ComputeCapacityRecord(
                vcpu=2,
                memory=8 * 1024**3,
                baseline_iops=4000,
                maximum_iops=15700,
                baseline_throughput=86.875 * 1024**2,
                maximum_throughput=347.5 * 1024**2,
            )
        },
        quotas=QuotaRecord(db_instances=40, total_storage=100000 * 1024**3),
        performance_insights={
            'production-db': {
                PerformanceInsightsMetric.CACHE_BLKS_HIT: 10.0,
                PerformanceInsightsMetric.IO_BLK_READ_TIME: 2.5,
                PerformanceInsightsMetric.STATE_ACTIVE_COUNT: 3.0,
                PerformanceInsightsMetric.WAL_ARCHIVED_COUNT: 7.0,
            }
        },
    )


def collect(snapshot, **config):
    """Register a collector returning snapshot and return its registry."""
    orchestrator = MagicMock()
    orchestrator.scrape.return_value = snapshot
    registry = CollectorRegistry()
    registry.register(
        RDSCollector(orchestrator, '123456789012', 'eu-west-3', ExporterConfig(**config))
    )
    return registry


class TestRDSCollector:
    """Test the exposition of a ScrapeSnapshot."""

    def test_registration_does_not_scrape(self):
        """Test registering the collector does not call AWS."""
        orchestrator = MagicMock()
        registry = CollectorRegistry()

        registry.register(RDSCollector(orchestrator, '1', 'eu-west-3', ExporterConfig()))

        orchestrator.scrape.assert_not_called()

    def test_exporter_metrics(self):
        """Test status metrics of a successful scrape."""
        registry = collect(build_snapshot())

        assert registry.get_sample_value('up') == 1
        assert registry.get_sample_value('rds_exporter_errors_total') == 1
        assert registry.get_sample_value('rds_exporter_build_info', {'version': __version__}) == 1
        assert registry.get_sample_value('rds_api_call_total', dict(ACCOUNT, api='rds')) == 4
        assert (
            registry.get_sample_value('rds_api_call_total', dict(ACCOUNT, api='servicequotas'))
            == 3
        )
        assert (
            registry.get_sample_value(
                'rds_api_call_total', dict(ACCOUNT, api='performanceinsights')
            )
            is None
        )

    def test_failed_inventory(self):
        """Test a scrape without inventory only exposes exporter status."""
        registry = collect(ScrapeSnapshot(up=False, errors=1))
        output = generate_latest(registry).decode()

        assert registry.get_sample_value('up') == 0
        assert registry.get_sample_value('rds_exporter_errors_total') == 1
        assert 'rds_api_call_total' not in output
        assert 'rds_instance_info' not in output

    def test_down_scrape_keeps_fetched_sections(self):
        """Test a scrape marked down still exposes the sections it fetched."""
        snapshot = build_snapshot()
        snapshot.up = False
        snapshot.quotas = None

        registry = collect(snapshot)
        output = generate_latest(registry).decode()

        assert registry.get_sample_value('up') == 0
        assert 'rds_allocated_storage_bytes{' in output
        assert registry.get_sample_value('rds_cpu_usage_percent_average', PRODUCTION) == 12.5
        assert registry.get_sample_value('rds_usage_db_instances_average', ACCOUNT) == 1
        assert 'rds_quota_max_dbinstances_average' not in output

    def test_instance_metrics(self):
        """Test per instance metrics and their conditions."""
        registry = collect(build_snapshot())

        assert registry.get_sample_value('rds_allocated_storage_bytes', PRODUCTION) == 20 * 1024**3
        assert registry.get_sample_value('rds_instance_status', PRODUCTION) == 1
        assert registry.get_sample_value('rds_instance_age_seconds', PRODUCTION) == 3600
        assert (
            registry.get_sample_value('rds_backup_retention_period_seconds', PRODUCTION) == 604800
        )
        assert registry.get_sample_value('rds_allocated_disk_iops_average', PRODUCTION) == 12000
        assert registry.get_sample_value(
            'rds_certificate_expiry_timestamp_seconds', PRODUCTION
        ) == datetime(2030, 1, 1, tzinfo=timezone.utc).timestamp()
        # Autoscaling disabled and no log size
        assert registry.get_sample_value('rds_max_allocated_storage_bytes', PRODUCTION) is None
        assert registry.get_sample_value('rds_instance_log_files_size_bytes', PRODUCTION) is None

    def test_disk_capacity_limited_by_instance_class(self):
        """Test max disk IOPS and throughput are bounded by the class baseline."""
        registry = collect(build_snapshot())

        assert registry.get_sample_value('rds_max_disk_iops_average', PRODUCTION) == 4000
        assert (
            registry.get_sample_value('rds_max_storage_throughput_bytes', PRODUCTION)
            == 86.875 * 1024**2
        )

    def test_disk_capacity_without_instance_class(self):
        """Test max disk values fall back to the instance values."""
        snapshot = build_snapshot()
        snapshot.capacities = {}

        registry = collect(snapshot)

        assert registry.get_sample_value('rds_max_disk_iops_average', PRODUCTION) == 12000

    def test_instance_info(self):
        """Test info labels."""
        registry = collect(build_snapshot())
        labels = dict(
            PRODUCTION,
            dbi_resource_id='db-ABC',
            instance_class='db.t3.large',
            engine='postgres',
            engine_version='15.4',
            storage_type='gp3',
            multi_az='true',
            deletion_protection='false',
            role='primary',
            source_dbidentifier='',
            pending_modified_values='false',
            pending_maintenance='forced',
            performance_insights_enabled='true',
            ca_certificate_identifier='rds-ca-rsa2048-g1',
            arn='arn:aws:rds:eu-west-3:123456789012:db:production-db',
        )

        assert registry.get_sample_value('rds_instance_info', labels) == 1

    def test_instance_tags(self):
        """Test tags are exposed as sanitized labels."""
        labels = dict(PRODUCTION, tag_team='sre', tag_app_kubernetes_io_name='billing')

        assert collect(build_snapshot()).get_sample_value('rds_instance_tags', labels) == 0
        registry = collect(build_snapshot(), collect_instance_tags=False)
        assert 'rds_instance_tags' not in generate_latest(registry).decode()

    def test_cloudwatch_metrics(self):
        """Test only the exposed CloudWatch metrics are published."""
        registry = collect(build_snapshot())
        output = generate_latest(registry).decode()

        assert registry.get_sample_value('rds_cpu_usage_percent_average', PRODUCTION) == 12.5
        assert registry.get_sample_value('rds_freeable_memory_bytes', PRODUCTION) == 1024
        assert 'BurstBalance' not in output

    def test_account_metrics(self):
        """Test quotas, usage and instance class metrics."""
        registry = collect(build_snapshot())

        assert registry.get_sample_value('rds_quota_max_dbinstances_average', ACCOUNT) == 40
        assert registry.get_sample_value('rds_usage_manual_snapshots_average', ACCOUNT) == 2
        assert (
            registry.get_sample_value(
                'rds_instance_vcpu_average', dict(ACCOUNT, instance_class='db.t3.large')
            )
            == 2
        )

    @pytest.mark.parametrize('toggle', ['collect_quotas', 'collect_usages'])
    def test_disabled_account_metrics(self, toggle):
        """Test disabled sources expose neither metrics nor API counters."""
        registry = collect(build_snapshot(), **{toggle: False})

        api = 'servicequotas' if toggle == 'collect_quotas' else 'usage'
        assert registry.get_sample_value('rds_api_call_total', dict(ACCOUNT, api=api)) is None

    def test_performance_insights(self):
        """Test Performance Insights counters when enabled."""
        registry = collect(build_snapshot(), collect_performance_insights=True)

        assert registry.get_sample_value('rds_db_cache_blks_hit', PRODUCTION) == 10
        assert registry.get_sample_value('rds_db_io_blk_read_time_total', PRODUCTION) == 2.5
        assert registry.get_sample_value('rds_db_state_active_count_total', PRODUCTION) == 3
        assert registry.get_sample_value('rds_db_wal_archived_count_total', PRODUCTION) == 7
        assert registry.get_sample_value('rds_db_state_active_count', PRODUCTION) is None
        assert (
            registry.get_sample_value(
                'rds_api_call_total', dict(ACCOUNT, api='performanceinsights')
            )
            == 0
        )

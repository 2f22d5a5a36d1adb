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

"""Names and help texts of the exposed Prometheus metrics."""

from awslabs.prometheus_rds_exporter.models import CloudWatchMetric, PerformanceInsightsMetric
from typing import Dict, NamedTuple


class MetricDefinition(NamedTuple):
    """Prometheus name and help text of one metric family."""

    name: str
    documentation: str


INSTANCE_LABELS = ['aws_account_id', 'aws_region', 'dbidentifier']
INSTANCE_CLASS_LABELS = ['aws_account_id', 'aws_region', 'instance_class']
ACCOUNT_LABELS = ['aws_account_id', 'aws_region']

INSTANCE_INFO_LABELS = INSTANCE_LABELS + [
    'dbi_resource_id',
    'instance_class',
    'engine',
    'engine_version',
    'storage_type',
    'multi_az',
    'deletion_protection',
    'role',
    'source_dbidentifier',
    'pending_modified_values',
    'pending_maintenance',
    'performance_insights_enabled',
    'ca_certificate_identifier',
    'arn',
]

INSTANCE_STATUS_HELP = (
    "Instance status (0 stopped or can't scrape) (1 ok | 2 backup | 3 startup | 4 modify | "
    '5 monitoring config | 1X storage | 20 renaming) (-1 unknown | -2 stopping | -3 creating | '
    '-4 deleting | -5 rebooting | -6 failed | -7 full storage | -8 upgrading | -9 maintenance | '
    '-10 restore error)'
)

# CloudWatch metrics exposed per instance, the others are only collected
CLOUDWATCH_METRICS: Dict[CloudWatchMetric, MetricDefinition] = {
    CloudWatchMetric.CPU_UTILIZATION: MetricDefinition(
        'rds_cpu_usage_percent_average', 'Instance CPU used'
    ),
    CloudWatchMetric.DATABASE_CONNECTIONS: MetricDefinition(
        'rds_database_connections_average',
        'The number of client network connections to the database instance',
    ),
    CloudWatchMetric.DB_LOAD: MetricDefinition(
        'rds_dbload_average', 'Number of active sessions for the DB engine'
    ),
    CloudWatchMetric.DB_LOAD_CPU: MetricDefinition(
        'rds_dbload_cpu_average', 'Number of active sessions where the wait event type is CPU'
    ),
    CloudWatchMetric.DB_LOAD_NON_CPU: MetricDefinition(
        'rds_dbload_noncpu_average',
        'Number of active sessions where the wait event type is not CPU',
    ),
    CloudWatchMetric.FREE_STORAGE_SPACE: MetricDefinition(
        'rds_free_storage_bytes', 'Free storage on the instance'
    ),
    CloudWatchMetric.FREEABLE_MEMORY: MetricDefinition(
        'rds_freeable_memory_bytes',
        'Amount of available random access memory. For MariaDB, MySQL, Oracle, and PostgreSQL '
        'DB instances, this metric reports the value of the MemAvailable field of /proc/meminfo',
    ),
    CloudWatchMetric.MAXIMUM_USED_TRANSACTION_IDS: MetricDefinition(
        'rds_maximum_used_transaction_ids_average',
        'Maximum transaction IDs that have been used. Applies to only PostgreSQL',
    ),
    CloudWatchMetric.READ_IOPS: MetricDefinition(
        'rds_read_iops_average', 'Average number of disk read I/O operations per second'
    ),
    CloudWatchMetric.READ_THROUGHPUT: MetricDefinition(
        'rds_read_throughput_bytes', 'Average number of bytes read from disk per second'
    ),
    CloudWatchMetric.REPLICA_LAG: MetricDefinition(
        'rds_replica_lag_seconds',
        'For read replica configurations, the amount of time a read replica DB instance lags '
        'behind the source DB instance. Applies to MariaDB, Microsoft SQL Server, MySQL, Oracle, '
        'and PostgreSQL read replicas',
    ),
    CloudWatchMetric.REPLICATION_SLOT_DISK_USAGE: MetricDefinition(
        'rds_replication_slot_disk_usage_bytes',
        'Disk space used by replication slot files. Applies to PostgreSQL',
    ),
    CloudWatchMetric.SWAP_USAGE: MetricDefinition(
        'rds_swap_usage_bytes',
        'Amount of swap space used on the DB instance. This metric is not available for SQL Server',
    ),
    CloudWatchMetric.TRANSACTION_LOGS_DISK_USAGE: MetricDefinition(
        'rds_transaction_logs_disk_usage_bytes',
        'Disk space used by transaction logs (only on PostgreSQL)',
    ),
    CloudWatchMetric.WRITE_IOPS: MetricDefinition(
        'rds_write_iops_average', 'Average number of disk write I/O operations per second'
    ),
    CloudWatchMetric.WRITE_THROUGHPUT: MetricDefinition(
        'rds_write_throughput_bytes', 'Average number of bytes written to disk per second'
    ),
}

PERFORMANCE_INSIGHTS_HELP: Dict[PerformanceInsightsMetric, str] = {
    PerformanceInsightsMetric.CACHE_BLKS_HIT: 'Number of times disk blocks were found already in the Postgres buffer cache (Blocks per second)',
    PerformanceInsightsMetric.CACHE_BUFFERS_ALLOC: 'Total number of new buffers allocated by background writer (Blocks per second)',
    PerformanceInsightsMetric.CHECKPOINT_BUFFERS_CHECKPOINT: 'Number of buffers written during checkpoints (Blocks per second)',
    PerformanceInsightsMetric.CHECKPOINT_SYNC_TIME: 'Total amount of time that has been spent in the portion of checkpoint processing where files are synchronized to disk in milliseconds (Milliseconds per checkpoint)',
    PerformanceInsightsMetric.CHECKPOINT_WRITE_TIME: 'Total amount of time that has been spent in the portion of checkpoint processing where files are written to disk in milliseconds (Milliseconds per checkpoint)',
    PerformanceInsightsMetric.CHECKPOINTS_REQ: 'Number of requested checkpoints that have been performed (Checkpoints per minute)',
    PerformanceInsightsMetric.CHECKPOINTS_TIMED: 'Number of scheduled checkpoints that have been performed (Checkpoints per minute)',
    PerformanceInsightsMetric.CHECKPOINT_MAXWRITTEN_CLEAN: 'Number of times the background writer stopped a cleaning scan because it had written too many buffers (Bgwriter clean stops per minute)',
    PerformanceInsightsMetric.CONCURRENCY_DEADLOCKS: 'Deadlocks (Deadlocks per minute)',
    PerformanceInsightsMetric.IO_BLK_READ_TIME: 'Time spent reading data file blocks by backends in milliseconds (Milliseconds)',
    PerformanceInsightsMetric.IO_BLKS_READ: 'Number of disk blocks read (Blocks per second)',
    PerformanceInsightsMetric.IO_BUFFERS_BACKEND: 'Number of buffers written directly by a backend (Blocks per second)',
    PerformanceInsightsMetric.IO_BUFFERS_BACKEND_FSYNC: 'Number of times a backend had to execute its own fsync call (Blocks per second)',
    PerformanceInsightsMetric.IO_BUFFERS_CLEAN: 'Number of buffers written by the background writer (Blocks per second)',
    PerformanceInsightsMetric.SQL_TUP_DELETED: 'Number of rows deleted by queries in this instance (Tuples per second)',
    PerformanceInsightsMetric.SQL_TUP_FETCHED: 'Number of rows fetched by queries in this instance (Tuples per second)',
    PerformanceInsightsMetric.SQL_TUP_INSERTED: 'Number of rows inserted by queries in this instance (Tuples per second)',
    PerformanceInsightsMetric.SQL_TUP_RETURNED: 'Number of rows returned by queries in this instance (Tuples per second)',
    PerformanceInsightsMetric.SQL_TUP_UPDATED: 'Number of rows updated by queries in this instance (Tuples per second)',
    PerformanceInsightsMetric.TEMP_BYTES: 'Total amount of data written to temporary files by queries in this instance (Bytes per second)',
    PerformanceInsightsMetric.TEMP_FILES: 'Number of temporary files created by queries in this instance (Files per minute)',
    PerformanceInsightsMetric.TRANSACTIONS_BLOCKED: 'Number of blocked transactions (Transactions)',
    PerformanceInsightsMetric.TRANSACTIONS_MAX_USED_XACT_IDS: 'Number of unvacuumed transactions (Transactions)',
    PerformanceInsightsMetric.TRANSACTIONS_XACT_COMMIT: 'Number of transactions in this instance that have been committed (Commits per second)',
    PerformanceInsightsMetric.TRANSACTIONS_XACT_ROLLBACK: 'Number of transactions in this instance that have been rolled back (Rollbacks per second)',
    PerformanceInsightsMetric.OLDEST_INACTIVE_LOGICAL_SLOT_XID_AGE: 'Oldest xid age held by Inactive Logical Replication Slot (Transactions)',
    PerformanceInsightsMetric.OLDEST_ACTIVE_LOGICAL_SLOT_XID_AGE: 'Oldest xid age held by active logical replication slot due to logical replication lag (Transactions)',
    PerformanceInsightsMetric.OLDEST_PREPARED_XID_AGE: 'Oldest xid age held by prepared transactions (Transactions)',
    PerformanceInsightsMetric.OLDEST_RUNNING_XID_AGE: 'Oldest xid age held by running transaction (Transactions)',
    PerformanceInsightsMetric.OLDEST_HOT_STANDBY_XID_AGE: 'Oldest xid age held by running transaction on replica with hot_standby_feedback = on (Transactions)',
    PerformanceInsightsMetric.USER_NUMBACKENDS: 'Number of backends currently connected to this instance (Connections)',
    PerformanceInsightsMetric.USER_MAX_CONNECTIONS: 'The maximum number of connections allowed for a DB instance as configured in max_connections parameter (Connections)',
    PerformanceInsightsMetric.WAL_ARCHIVED_COUNT: 'Number of WAL files that have been successfully archived (Files per minute)',
    PerformanceInsightsMetric.WAL_ARCHIVE_FAILED_COUNT: 'Number of failed attempts for archiving WAL files (Files per minute)',
    PerformanceInsightsMetric.STATE_ACTIVE_COUNT: 'Number of sessions in active state (Sessions)',
    PerformanceInsightsMetric.STATE_IDLE_COUNT: 'Number of sessions in idle state (Sessions)',
    PerformanceInsightsMetric.STATE_IDLE_IN_TRANSACTION_COUNT: 'Number of sessions in idle in transaction state (Sessions)',
    PerformanceInsightsMetric.STATE_IDLE_IN_TRANSACTION_ABORTED_COUNT: 'Number of sessions in idle in transaction (aborted) state (Sessions)',
    PerformanceInsightsMetric.STATE_IDLE_IN_TRANSACTION_MAX_TIME: 'Duration of the longest running transaction in the idle in transaction state (Seconds)',
    PerformanceInsightsMetric.CHECKPOINT_SYNC_LATENCY: 'Total amount of time that has been spent in the portion of checkpoint processing where files are synchronized to disk (Milliseconds per checkpoint)',
    PerformanceInsightsMetric.CHECKPOINT_WRITE_LATENCY: 'Total amount of time that has been spent in the portion of checkpoint processing where files are written to disk (Milliseconds per checkpoint)',
    PerformanceInsightsMetric.TRANSACTIONS_ACTIVE: 'Number of active transactions (Transactions)',
}


def performance_insights_metric_name(metric: PerformanceInsightsMetric) -> str:
    """Return the Prometheus name of a counter (db.IO.blks_read.avg -> rds_db_io_blks_read)."""
    name = metric.value.removeprefix('db.').removesuffix('.avg')
    return 'rds_db_' + name.lower().replace('.', '_')


PERFORMANCE_INSIGHTS_METRICS: Dict[PerformanceInsightsMetric, MetricDefinition] = {
    metric: MetricDefinition(performance_insights_metric_name(metric), documentation)
    for metric, documentation in PERFORMANCE_INSIGHTS_HELP.items()
}

# Cumulative counters, exposed with the counter type
PERFORMANCE_INSIGHTS_COUNTERS = frozenset(
    {
        PerformanceInsightsMetric.IO_BLK_READ_TIME,
        PerformanceInsightsMetric.WAL_ARCHIVED_COUNT,
        PerformanceInsightsMetric.WAL_ARCHIVE_FAILED_COUNT,
        PerformanceInsightsMetric.STATE_ACTIVE_COUNT,
        PerformanceInsightsMetric.STATE_IDLE_COUNT,
        PerformanceInsightsMetric.STATE_IDLE_IN_TRANSACTION_COUNT,
        PerformanceInsightsMetric.STATE_IDLE_IN_TRANSACTION_ABORTED_COUNT,
    }
)

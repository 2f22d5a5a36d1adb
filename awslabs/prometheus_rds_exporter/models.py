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

"""Data models for one scrape of the RDS fleet."""

from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, Optional


class MaintenanceCategory(str, Enum):
    """Pending maintenance state of an instance."""

    NONE = 'no'
    PENDING = 'pending'
    AUTO_APPLIED = 'auto-applied'
    FORCED = 'forced'
    UNKNOWN = 'unknown'


# Higher wins when an instance has several pending actions
MAINTENANCE_PRECEDENCE = {
    MaintenanceCategory.NONE: 0,
    MaintenanceCategory.PENDING: 1,
    MaintenanceCategory.AUTO_APPLIED: 2,
    MaintenanceCategory.FORCED: 3,
}


class InstanceRole(str, Enum):
    """Replication role of an instance."""

    PRIMARY = 'primary'
    REPLICA = 'replica'
    WRITER = 'writer'
    READER = 'reader'


class CloudWatchMetric(str, Enum):
    """CloudWatch AWS/RDS metrics fetched for every instance."""

    BURST_BALANCE = 'BurstBalance'
    CHECKPOINT_LAG = 'CheckpointLag'
    CPU_CREDIT_BALANCE = 'CPUCreditBalance'
    CPU_CREDIT_USAGE = 'CPUCreditUsage'
    CPU_SURPLUS_CREDIT_BALANCE = 'CPUSurplusCreditBalance'
    CPU_SURPLUS_CREDITS_CHARGED = 'CPUSurplusCreditsCharged'
    CPU_UTILIZATION = 'CPUUtilization'
    DB_LOAD = 'DBLoad'
    DB_LOAD_CPU = 'DBLoadCPU'
    DB_LOAD_NON_CPU = 'DBLoadNonCPU'
    DATABASE_CONNECTIONS = 'DatabaseConnections'
    DISK_QUEUE_DEPTH = 'DiskQueueDepth'
    EBS_BYTE_BALANCE = 'EBSByteBalance%'
    EBS_IO_BALANCE = 'EBSIOBalance%'
    FREE_STORAGE_SPACE = 'FreeStorageSpace'
    FREEABLE_MEMORY = 'FreeableMemory'
    MAXIMUM_USED_TRANSACTION_IDS = 'MaximumUsedTransactionIDs'
    NETWORK_RECEIVE_THROUGHPUT = 'NetworkReceiveThroughput'
    NETWORK_TRANSMIT_THROUGHPUT = 'NetworkTransmitThroughput'
    OLDEST_REPLICATION_SLOT_LAG = 'OldestReplicationSlotLag'
    READ_LATENCY = 'ReadLatency'
    READ_IOPS = 'ReadIOPS'
    READ_THROUGHPUT = 'ReadThroughput'
    REPLICA_LAG = 'ReplicaLag'
    REPLICATION_SLOT_DISK_USAGE = 'ReplicationSlotDiskUsage'
    SWAP_USAGE = 'SwapUsage'
    TRANSACTION_LOGS_DISK_USAGE = 'TransactionLogsDiskUsage'
    TRANSACTION_LOGS_GENERATION = 'TransactionLogsGeneration'
    WRITE_IOPS = 'WriteIOPS'
    WRITE_LATENCY = 'WriteLatency'
    WRITE_THROUGHPUT = 'WriteThroughput'


class UsageMetric(str, Enum):
    """AWS/Usage ResourceCount resources reported for the RDS service."""

    ALLOCATED_STORAGE = 'AllocatedStorage'
    DB_INSTANCES = 'DBInstances'
    MANUAL_SNAPSHOTS = 'ManualSnapshots'


class PerformanceInsightsMetric(str, Enum):
    """Performance Insights engine counters fetched for opted-in instances."""

    CACHE_BLKS_HIT = 'db.Cache.blks_hit.avg'
    CACHE_BUFFERS_ALLOC = 'db.Cache.buffers_alloc.avg'
    CHECKPOINT_BUFFERS_CHECKPOINT = 'db.Checkpoint.buffers_checkpoint.avg'
    CHECKPOINT_SYNC_TIME = 'db.Checkpoint.checkpoint_sync_time.avg'
    CHECKPOINT_WRITE_TIME = 'db.Checkpoint.checkpoint_write_time.avg'
    CHECKPOINTS_REQ = 'db.Checkpoint.checkpoints_req.avg'
    CHECKPOINTS_TIMED = 'db.Checkpoint.checkpoints_timed.avg'
    CHECKPOINT_MAXWRITTEN_CLEAN = 'db.Checkpoint.maxwritten_clean.avg'
    CONCURRENCY_DEADLOCKS = 'db.Concurrency.deadlocks.avg'
    IO_BLK_READ_TIME = 'db.IO.blk_read_time.avg'
    IO_BLKS_READ = 'db.IO.blks_read.avg'
    IO_BUFFERS_BACKEND = 'db.IO.buffers_backend.avg'
    IO_BUFFERS_BACKEND_FSYNC = 'db.IO.buffers_backend_fsync.avg'
    IO_BUFFERS_CLEAN = 'db.IO.buffers_clean.avg'
    SQL_TUP_DELETED = 'db.SQL.tup_deleted.avg'
    SQL_TUP_FETCHED = 'db.SQL.tup_fetched.avg'
    SQL_TUP_INSERTED = 'db.SQL.tup_inserted.avg'
    SQL_TUP_RETURNED = 'db.SQL.tup_returned.avg'
    SQL_TUP_UPDATED = 'db.SQL.tup_updated.avg'
    TEMP_BYTES = 'db.Temp.temp_bytes.avg'
    TEMP_FILES = 'db.Temp.temp_files.avg'
    TRANSACTIONS_BLOCKED = 'db.Transactions.blocked_transactions.avg'
    TRANSACTIONS_MAX_USED_XACT_IDS = 'db.Transactions.max_used_xact_ids.avg'
    TRANSACTIONS_XACT_COMMIT = 'db.Transactions.xact_commit.avg'
    TRANSACTIONS_XACT_ROLLBACK = 'db.Transactions.xact_rollback.avg'
    OLDEST_INACTIVE_LOGICAL_SLOT_XID_AGE = (
        'db.Transactions.oldest_inactive_logical_replication_slot_xid_age.avg'
    )
    OLDEST_ACTIVE_LOGICAL_SLOT_XID_AGE = (
        'db.Transactions.oldest_active_logical_replication_slot_xid_age.avg'
    )
    OLDEST_PREPARED_XID_AGE = 'db.Transactions.oldest_prepared_transaction_xid_age.avg'
    OLDEST_RUNNING_XID_AGE = 'db.Transactions.oldest_running_transaction_xid_age.avg'
    OLDEST_HOT_STANDBY_XID_AGE = 'db.Transactions.oldest_hot_standby_feedback_xid_age.avg'
    USER_NUMBACKENDS = 'db.User.numbackends.avg'
    USER_MAX_CONNECTIONS = 'db.User.max_connections.avg'
    WAL_ARCHIVED_COUNT = 'db.WAL.archived_count.avg'
    WAL_ARCHIVE_FAILED_COUNT = 'db.WAL.archive_failed_count.avg'
    STATE_ACTIVE_COUNT = 'db.state.active_count.avg'
    STATE_IDLE_COUNT = 'db.state.idle_count.avg'
    STATE_IDLE_IN_TRANSACTION_COUNT = 'db.state.idle_in_transaction_count.avg'
    STATE_IDLE_IN_TRANSACTION_ABORTED_COUNT = 'db.state.idle_in_transaction_aborted_count.avg'
    STATE_IDLE_IN_TRANSACTION_MAX_TIME = 'db.state.idle_in_transaction_max_time.avg'
    CHECKPOINT_SYNC_LATENCY = 'db.Checkpoint.checkpoint_sync_latency.avg'
    CHECKPOINT_WRITE_LATENCY = 'db.Checkpoint.checkpoint_write_latency.avg'
    TRANSACTIONS_ACTIVE = 'db.Transactions.active_transactions.avg'


TimeSeriesSample = Dict[CloudWatchMetric, float]
PerformanceInsightRecord = Dict[PerformanceInsightsMetric, float]


class InstanceRecord(BaseModel):
    """One RDS DB instance as seen during a scrape."""

    model_config = ConfigDict(frozen=True)

    dbidentifier: str = Field(..., description='The user-assigned DB instance identifier')
    dbi_resource_id: str = Field('', description='The immutable DB resource identifier')
    arn: str = Field('', description='The Amazon Resource Name of the instance')
    instance_class: str = Field(..., description='The DB instance class, e.g. db.t3.micro')
    engine: str = Field('', description='Database engine')
    engine_version: str = Field('', description='Database engine version')
    storage_type: str = Field('', description='Storage type (gp2, gp3, io1, io2, ...)')
    allocated_storage: int = Field(0, description='Allocated storage in bytes')
    max_allocated_storage: int = Field(
        0, description='Storage autoscaling upper limit in bytes (0 when disabled)'
    )
    max_iops: int = Field(0, description='Disk IOPS computed from the storage type')
    storage_throughput: int = Field(
        0, description='Disk throughput in bytes per second computed from the storage type'
    )
    backup_retention_period: int = Field(0, description='Automatic backup retention in seconds')
    multi_az: bool = False
    deletion_protection: bool = False
    publicly_accessible: bool = False
    performance_insights_enabled: bool = False
    pending_maintenance: MaintenanceCategory = MaintenanceCategory.NONE
    pending_modified_values: bool = False
    role: InstanceRole = InstanceRole.PRIMARY
    source_dbidentifier: str = Field('', description='Replication source, empty for primaries')
    status: int = Field(-1, description='Numeric instance status code')
    age: Optional[float] = Field(None, description='Seconds since instance creation')
    ca_certificate_identifier: str = ''
    certificate_valid_till: Optional[datetime] = None
    tags: Dict[str, str] = Field(default_factory=dict)
    log_files_size: Optional[int] = Field(None, description='Total size of log files in bytes')


class ClusterRecord(BaseModel):
    """One RDS DB cluster, used to resolve writer and reader roles."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    arn: str = ''
    engine: str = ''
    engine_version: str = ''
    allocated_storage: int = 0
    resource_id: str = ''
    age: Optional[float] = None
    members: Dict[str, InstanceRole] = Field(default_factory=dict)
    writer_dbidentifier: str = ''
    tags: Dict[str, str] = Field(default_factory=dict)


class UsageRecord(BaseModel):
    """Fleet-wide RDS usage counters."""

    allocated_storage: float = Field(0, description='Total allocated storage in bytes')
    db_instances: float = Field(0, description='Number of DB instances')
    manual_snapshots: float = Field(0, description='Number of manual snapshots')


class ComputeCapacityRecord(BaseModel):
    """Hardware capabilities of one instance class."""

    vcpu: int = 0
    memory: int = Field(0, description='Memory in bytes')
    baseline_iops: int = 0
    maximum_iops: int = 0
    baseline_throughput: float = Field(0, description='EBS baseline throughput in bytes/s')
    maximum_throughput: float = Field(0, description='EBS maximum throughput in bytes/s')


class QuotaRecord(BaseModel):
    """Account level RDS service quotas."""

    db_instances: float = 0
    total_storage: float = Field(0, description='Total storage quota in bytes')
    manual_db_instance_snapshots: float = 0


class CallCounters(BaseModel):
    """Number of AWS API calls made by each source during one scrape."""

    rds: int = 0
    tag: int = 0
    cloudwatch: int = 0
    usage: int = 0
    ec2: int = 0
    servicequotas: int = 0
    performanceinsights: int = 0


class ScrapeSnapshot(BaseModel):
    """Everything collected by one scrape, handed once to the exposition layer."""

    up: bool = False
    inventory_fetched: bool = False
    errors: int = 0
    counters: CallCounters = Field(default_factory=CallCounters)
    instances: Dict[str, InstanceRecord] = Field(default_factory=dict)
    clusters: Dict[str, ClusterRecord] = Field(default_factory=dict)
    instance_metrics: Dict[str, TimeSeriesSample] = Field(default_factory=dict)
    usage: Optional[UsageRecord] = None
    capacities: Dict[str, ComputeCapacityRecord] = Field(default_factory=dict)
    quotas: Optional[QuotaRecord] = None
    performance_insights: Dict[str, PerformanceInsightRecord] = Field(default_factory=dict)

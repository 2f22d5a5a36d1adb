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

"""Amazon RDS instance inventory.

Builds one InstanceRecord per DB instance from DescribeDBInstances and
enriches it with pending maintenance actions, cluster roles and log file
sizes. Disk IOPS and throughput are derived from the storage type because
the API only reports them for some storage classes.
See https://docs.aws.amazon.com/AmazonRDS/latest/UserGuide/CHAP_Storage.html
"""

import threading
from awslabs.prometheus_rds_exporter.exceptions import (
    AWSResourceNotFoundException,
    translate_error,
)
from awslabs.prometheus_rds_exporter.models import (
    MAINTENANCE_PRECEDENCE,
    ClusterRecord,
    InstanceRecord,
    InstanceRole,
    MaintenanceCategory,
)
from awslabs.prometheus_rds_exporter.unit import (
    days_to_seconds,
    gibibytes_to_bytes,
    kibibytes_to_mebibytes,
    mebibytes_to_bytes,
)
from awslabs.prometheus_rds_exporter.utils import iterate_pages, raise_if_cancelled
from botocore.exceptions import ClientError
from datetime import datetime, timezone
from loguru import logger
from typing import Any, Dict, List, Optional, Tuple


SOURCE = 'rds'

GP2_IOPS_MIN = 100
GP2_IOPS_MAX = 16000
GP2_IOPS_PER_GIB = 3
GP2_THROUGHPUT_VOLUME_THRESHOLD = 334
GP2_THROUGHPUT_SMALL_VOLUME = 128
GP2_THROUGHPUT_LARGE_VOLUME = 250
IO1_HIGH_IOPS_THRESHOLD = 64000
IO1_HIGH_IOPS_THROUGHPUT = 1000
IO1_LARGE_IOPS_THRESHOLD = 32000
IO1_LARGE_IOPS_KIB_PER_IOPS = 16
IO1_MEDIUM_IOPS_THRESHOLD = 2000
IO1_MEDIUM_IOPS_THROUGHPUT = 500
IO1_DEFAULT_KIB_PER_IOPS = 256
IO2_THROUGHPUT_MIN = 256  # 1000 IOPS * 0.256 MiB/s
IO2_THROUGHPUT_MAX = 4000  # EBS limit
IO2_THROUGHPUT_PER_IOPS = 0.256

# Retrieved from https://docs.aws.amazon.com/AmazonRDS/latest/UserGuide/accessing-monitoring.html
INSTANCE_STATUS_UNKNOWN = -1
INSTANCE_STATUSES = {
    'available': 1,
    'backing-up': 2,
    'starting': 3,
    'modifying': 4,
    'configuring-enhanced-monitoring': 5,
    'storage-initialization': 10,
    'storage-optimization': 11,
    'renaming': 20,
    'stopped': 0,
    'unknown': INSTANCE_STATUS_UNKNOWN,
    'stopping': -2,
    'creating': -3,
    'deleting': -4,
    'rebooting': -5,
    'failed': -6,
    'storage-full': -7,
    'upgrading': -8,
    'maintenance': -9,
    'restore-error': -10,
}

PARAMETER_GROUP_IN_SYNC = 'in-sync'


def clamp(lower: int, value: int, upper: int) -> int:
    """Return value bounded to [lower, upper]."""
    if value < lower:
        return lower
    if value > upper:
        return upper
    return value


def get_db_identifier_from_arn(arn: str) -> str:
    """Return the instance identifier, the last segment of its ARN."""
    return arn.split(':')[-1]


def get_instance_status_code(status: str) -> int:
    """Return the numeric code of an instance status, -1 when unknown."""
    return INSTANCE_STATUSES.get(status, INSTANCE_STATUS_UNKNOWN)


def get_storage_metrics(
    storage_type: str, allocated_storage: int, raw_iops: int, raw_throughput: int
) -> Tuple[int, int]:
    """Compute disk IOPS and throughput (MiB/s) following EBS rules.

    Args:
        storage_type: RDS storage type
        allocated_storage: Allocated storage in GiB
        raw_iops: IOPS reported by the API (0 when absent)
        raw_throughput: Throughput in MiB/s reported by the API (0 when absent)

    Returns:
        Tuple of (iops, throughput in MiB/s)
    """
    if storage_type == 'gp2':
        # 3 IOPS per GiB between 100 and 16,000
        # https://docs.aws.amazon.com/AWSEC2/latest/UserGuide/general-purpose.html#EBSVolumeTypes_gp2
        iops = clamp(GP2_IOPS_MIN, allocated_storage * GP2_IOPS_PER_GIB, GP2_IOPS_MAX)
        if allocated_storage >= GP2_THROUGHPUT_VOLUME_THRESHOLD:
            return iops, GP2_THROUGHPUT_LARGE_VOLUME
        return iops, GP2_THROUGHPUT_SMALL_VOLUME

    if storage_type == 'io1':
        # https://docs.aws.amazon.com/AWSEC2/latest/UserGuide/provisioned-iops.html#EBSVolumeTypes_piops
        if raw_iops >= IO1_HIGH_IOPS_THRESHOLD:
            return raw_iops, IO1_HIGH_IOPS_THROUGHPUT
        if raw_iops >= IO1_LARGE_IOPS_THRESHOLD:
            return raw_iops, kibibytes_to_mebibytes(raw_iops * IO1_LARGE_IOPS_KIB_PER_IOPS)
        if raw_iops >= IO1_MEDIUM_IOPS_THRESHOLD:
            return raw_iops, IO1_MEDIUM_IOPS_THROUGHPUT
        return raw_iops, kibibytes_to_mebibytes(raw_iops * IO1_DEFAULT_KIB_PER_IOPS)

    if storage_type == 'io2':
        # https://docs.aws.amazon.com/ebs/latest/userguide/provisioned-iops.html#io2-block-express
        theoretical_throughput = int(raw_iops * IO2_THROUGHPUT_PER_IOPS)
        return raw_iops, clamp(IO2_THROUGHPUT_MIN, theoretical_throughput, IO2_THROUGHPUT_MAX)

    # gp3 and unknown storage types report their own values
    return raw_iops, raw_throughput


def get_instance_role(
    instance: Dict[str, Any], cluster: Optional[ClusterRecord]
) -> Tuple[InstanceRole, str]:
    """Return the replication role of an instance and its source identifier.

    Args:
        instance: DescribeDBInstances item
        cluster: The instance's cluster, if it belongs to one

    Returns:
        Tuple of (role, source instance identifier or empty string)
    """
    dbidentifier = instance['DBInstanceIdentifier']

    if cluster is not None and dbidentifier in cluster.members:
        if cluster.members[dbidentifier] == InstanceRole.WRITER:
            return InstanceRole.WRITER, ''
        return InstanceRole.READER, cluster.writer_dbidentifier

    source = instance.get('ReadReplicaSourceDBInstanceIdentifier')
    if source:
        return InstanceRole.REPLICA, source

    return InstanceRole.PRIMARY, ''


def has_pending_modified_values(instance: Dict[str, Any]) -> bool:
    """Return True if instance changes or parameter group changes await a reboot."""
    if instance.get('PendingModifiedValues'):
        return True
    return any(
        group.get('ParameterApplyStatus') != PARAMETER_GROUP_IN_SYNC
        for group in instance.get('DBParameterGroups', [])
    )


def convert_tags(tags: List[Dict[str, str]]) -> Dict[str, str]:
    """Convert an AWS TagList into a dictionary, skipping empty keys."""
    return {tag['Key']: tag.get('Value', '') for tag in tags or [] if tag.get('Key')}


def _seconds_since(moment: Optional[datetime]) -> Optional[float]:
    if moment is None:
        return None
    return (datetime.now(timezone.utc) - moment).total_seconds()


class InstanceFetcher:
    """Fetch the RDS instance inventory of the configured account and region."""

    def __init__(
        self,
        client: Any,
        tag_client: Any = None,
        collect_logs_size: bool = True,
        collect_maintenances: bool = True,
        tag_selections: Optional[Dict[str, List[str]]] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        """Initialize the fetcher.

        Args:
            client: boto3 RDS client
            tag_client: boto3 resourcegroupstaggingapi client, required with tag_selections
            collect_logs_size: Sum log file sizes of every instance
            collect_maintenances: Resolve pending maintenance actions
            tag_selections: Only fetch instances whose tags match (key to accepted values)
            cancel_event: Set when the scrape deadline expires
        """
        self.client = client
        self.tag_client = tag_client
        self.collect_logs_size = collect_logs_size
        self.collect_maintenances = collect_maintenances
        self.tag_selections = tag_selections or {}
        self.cancel_event = cancel_event
        self.api_calls = 0
        self.tag_api_calls = 0

    def fetch_all(self) -> Tuple[Dict[str, InstanceRecord], Dict[str, ClusterRecord]]:
        """Fetch every instance and cluster.

        Returns:
            Tuple of (instances by identifier, clusters by identifier)

        Raises:
            RDSExporterException: If any inventory call fails
        """
        try:
            maintenances = self.get_pending_maintenances() if self.collect_maintenances else {}
            filters = self.get_instance_filters()
            clusters = self.get_clusters(filters)

            instances: Dict[str, InstanceRecord] = {}
            for page in iterate_pages(self.client, 'describe_db_instances', {'Filters': filters}):
                self.api_calls += 1
                for db_instance in page.get('DBInstances', []):
                    raise_if_cancelled(self.cancel_event, SOURCE)
                    record = self.compute_instance(db_instance, maintenances, clusters)
                    instances[record.dbidentifier] = record
        except ClientError as e:
            raise translate_error(e) from e

        logger.debug(f'Fetched {len(instances)} RDS instances and {len(clusters)} clusters')
        return instances, clusters

    def get_pending_maintenances(self) -> Dict[str, MaintenanceCategory]:
        """Return the highest precedence pending maintenance category of each instance."""
        raise_if_cancelled(self.cancel_event, SOURCE)
        self.api_calls += 1
        response = self.client.describe_pending_maintenance_actions()

        maintenances: Dict[str, MaintenanceCategory] = {}
        for maintenance in response.get('PendingMaintenanceActions', []):
            dbidentifier = get_db_identifier_from_arn(maintenance['ResourceIdentifier'])
            category = maintenances.get(dbidentifier, MaintenanceCategory.NONE)

            for action in maintenance.get('PendingMaintenanceActionDetails', []):
                if action.get('ForcedApplyDate') is not None:
                    candidate = MaintenanceCategory.FORCED
                elif action.get('AutoAppliedAfterDate') is not None:
                    candidate = MaintenanceCategory.AUTO_APPLIED
                else:
                    candidate = MaintenanceCategory.PENDING

                if MAINTENANCE_PRECEDENCE[candidate] > MAINTENANCE_PRECEDENCE[category]:
                    category = candidate

            maintenances[dbidentifier] = category

        return maintenances

    def get_instance_filters(self) -> List[Dict[str, Any]]:
        """Translate the tag selection into a DescribeDBInstances filter."""
        if not self.tag_selections:
            return []

        tag_filters = [
            {'Key': key, 'Values': values} for key, values in self.tag_selections.items()
        ]
        arns = []
        for page in iterate_pages(
            self.tag_client,
            'get_resources',
            {'ResourceTypeFilters': ['rds:db'], 'TagFilters': tag_filters},
        ):
            self.tag_api_calls += 1
            arns.extend(item['ResourceARN'] for item in page.get('ResourceTagMappingList', []))
            raise_if_cancelled(self.cancel_event, SOURCE)

        if not arns:
            logger.warning(
                f'No RDS instance matches tag selection {self.tag_selections}, '
                "won't limit which instances are collected"
            )
            return []

        return [{'Name': 'db-instance-id', 'Values': arns}]

    def get_clusters(self, filters: List[Dict[str, Any]]) -> Dict[str, ClusterRecord]:
        """Return the DB clusters matching filters with the role of their members."""
        clusters: Dict[str, ClusterRecord] = {}
        for page in iterate_pages(self.client, 'describe_db_clusters', {'Filters': filters}):
            self.api_calls += 1
            for db_cluster in page.get('DBClusters', []):
                members: Dict[str, InstanceRole] = {}
                writer = ''
                for member in db_cluster.get('DBClusterMembers', []):
                    if member.get('IsClusterWriter'):
                        members[member['DBInstanceIdentifier']] = InstanceRole.WRITER
                        writer = member['DBInstanceIdentifier']
                    else:
                        members[member['DBInstanceIdentifier']] = InstanceRole.READER

                identifier = db_cluster['DBClusterIdentifier']
                clusters[identifier] = ClusterRecord(
                    identifier=identifier,
                    arn=db_cluster.get('DBClusterArn', ''),
                    engine=db_cluster.get('Engine', ''),
                    engine_version=db_cluster.get('EngineVersion', ''),
                    allocated_storage=gibibytes_to_bytes(db_cluster.get('AllocatedStorage', 0)),
                    resource_id=db_cluster.get('DbClusterResourceId', ''),
                    age=_seconds_since(db_cluster.get('ClusterCreateTime')),
                    members=members,
                    writer_dbidentifier=writer,
                    tags=convert_tags(db_cluster.get('TagList', [])),
                )
            raise_if_cancelled(self.cancel_event, SOURCE)

        return clusters

    def compute_instance(
        self,
        db_instance: Dict[str, Any],
        maintenances: Dict[str, MaintenanceCategory],
        clusters: Dict[str, ClusterRecord],
    ) -> InstanceRecord:
        """Build the InstanceRecord of one DescribeDBInstances item."""
        dbidentifier = db_instance['DBInstanceIdentifier']
        allocated_storage = db_instance.get('AllocatedStorage', 0)

        iops, throughput = get_storage_metrics(
            db_instance.get('StorageType', ''),
            allocated_storage,
            db_instance.get('Iops') or 0,
            db_instance.get('StorageThroughput') or 0,
        )

        if self.collect_maintenances:
            pending_maintenance = maintenances.get(dbidentifier, MaintenanceCategory.NONE)
        else:
            pending_maintenance = MaintenanceCategory.UNKNOWN

        log_files_size = self.get_log_files_size(dbidentifier) if self.collect_logs_size else None

        cluster_identifier = db_instance.get('DBClusterIdentifier')
        role, source = get_instance_role(
            db_instance, clusters.get(cluster_identifier) if cluster_identifier else None
        )

        certificate = db_instance.get('CertificateDetails') or {}

        return InstanceRecord(
            dbidentifier=dbidentifier,
            dbi_resource_id=db_instance.get('DbiResourceId', ''),
            arn=db_instance.get('DBInstanceArn', ''),
            instance_class=db_instance['DBInstanceClass'],
            engine=db_instance.get('Engine', ''),
            engine_version=db_instance.get('EngineVersion', ''),
            storage_type=db_instance.get('StorageType', ''),
            allocated_storage=gibibytes_to_bytes(allocated_storage),
            max_allocated_storage=gibibytes_to_bytes(db_instance.get('MaxAllocatedStorage', 0)),
            max_iops=iops,
            storage_throughput=mebibytes_to_bytes(throughput),
            backup_retention_period=days_to_seconds(db_instance.get('BackupRetentionPeriod', 0)),
            multi_az=db_instance.get('MultiAZ', False),
            deletion_protection=db_instance.get('DeletionProtection', False),
            publicly_accessible=db_instance.get('PubliclyAccessible', False),
            performance_insights_enabled=db_instance.get('PerformanceInsightsEnabled', False),
            pending_maintenance=pending_maintenance,
            pending_modified_values=has_pending_modified_values(db_instance),
            role=role,
            source_dbidentifier=source,
            status=get_instance_status_code(db_instance.get('DBInstanceStatus', '')),
            age=_seconds_since(db_instance.get('InstanceCreateTime')),
            ca_certificate_identifier=db_instance.get('CACertificateIdentifier', ''),
            certificate_valid_till=certificate.get('ValidTill'),
            tags=convert_tags(db_instance.get('TagList', [])),
            log_files_size=log_files_size,
        )

    def get_log_files_size(self, dbidentifier: str) -> Optional[int]:
        """Return the total size of the instance's log files.

        Returns:
            Size in bytes, or None if the instance has no log file or is not found yet
        """
        raise_if_cancelled(self.cancel_event, SOURCE)
        self.api_calls += 1
        try:
            response = self.client.describe_db_log_files(DBInstanceIdentifier=dbidentifier)
        except ClientError as e:
            error = translate_error(e)
            # Replicas in "creating" status are not found yet
            if isinstance(error, AWSResourceNotFoundException):
                logger.debug(f'Log files of {dbidentifier} not found: {error.message}')
                return None
            raise error from e

        files = response.get('DescribeDBLogFiles', [])
        if not files:
            return None
        return sum(log_file.get('Size', 0) for log_file in files)

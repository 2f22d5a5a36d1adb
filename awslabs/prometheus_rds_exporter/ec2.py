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

"""EC2 instance type capabilities of RDS instance classes.

RDS instance classes are EC2 instance types with a "db." prefix, except for
a few families that RDS markets under a different name.
"""

import threading
from awslabs.prometheus_rds_exporter.exceptions import translate_error
from awslabs.prometheus_rds_exporter.models import ComputeCapacityRecord
from awslabs.prometheus_rds_exporter.unit import mebibytes_to_bytes
from awslabs.prometheus_rds_exporter.utils import chunk_by, raise_if_cancelled
from botocore.exceptions import ClientError
from loguru import logger
from typing import Any, Dict, Optional, Sequence


SOURCE = 'ec2'

MAX_INSTANCE_TYPES_PER_REQUEST = 100  # DescribeInstanceTypes limit

RDS_CLASS_PREFIX = 'db.'

# RDS instance family -> EC2 instance family
RDS_TO_EC2_FAMILIES = {
    'x2g': 'x2gd',
}
EC2_TO_RDS_FAMILIES = {ec2: rds for rds, ec2 in RDS_TO_EC2_FAMILIES.items()}


def _translate_family(instance_type: str, families: Dict[str, str]) -> str:
    family, separator, size = instance_type.partition('.')
    return f'{families.get(family, family)}{separator}{size}'


def to_ec2_instance_type(instance_class: str) -> str:
    """Return the EC2 instance type of an RDS instance class (db.x2g.large -> x2gd.large)."""
    if instance_class.startswith(RDS_CLASS_PREFIX):
        instance_class = instance_class[len(RDS_CLASS_PREFIX) :]
    return _translate_family(instance_class, RDS_TO_EC2_FAMILIES)


def to_rds_instance_class(instance_type: str) -> str:
    """Return the RDS instance class of an EC2 instance type (x2gd.large -> db.x2g.large)."""
    return RDS_CLASS_PREFIX + _translate_family(instance_type, EC2_TO_RDS_FAMILIES)


class InstanceTypeFetcher:
    """Fetch EC2 capabilities of RDS instance classes."""

    def __init__(self, client: Any, cancel_event: Optional[threading.Event] = None):
        """Initialize the fetcher.

        Args:
            client: boto3 EC2 client
            cancel_event: Set when the scrape deadline expires
        """
        self.client = client
        self.cancel_event = cancel_event
        self.api_calls = 0

    def fetch(self, instance_classes: Sequence[str]) -> Dict[str, ComputeCapacityRecord]:
        """Describe the EC2 instance types backing the given RDS instance classes.

        Args:
            instance_classes: RDS instance classes, duplicates are ignored

        Returns:
            Capabilities by RDS instance class

        Raises:
            RDSExporterException: If a DescribeInstanceTypes call fails
        """
        instance_types = sorted({to_ec2_instance_type(name) for name in instance_classes})
        capacities: Dict[str, ComputeCapacityRecord] = {}

        for batch in chunk_by(instance_types, MAX_INSTANCE_TYPES_PER_REQUEST):
            raise_if_cancelled(self.cancel_event, SOURCE)
            self.api_calls += 1
            try:
                response = self.client.describe_instance_types(InstanceTypes=batch)
            except ClientError as e:
                raise translate_error(e) from e

            for instance_type in response.get('InstanceTypes', []):
                ebs = instance_type.get('EbsInfo', {}).get('EbsOptimizedInfo', {})
                capacities[to_rds_instance_class(instance_type['InstanceType'])] = (
                    ComputeCapacityRecord(
                        vcpu=instance_type.get('VCpuInfo', {}).get('DefaultVCpus', 0),
                        memory=mebibytes_to_bytes(
                            instance_type.get('MemoryInfo', {}).get('SizeInMiB', 0)
                        ),
                        baseline_iops=ebs.get('BaselineIops', 0),
                        maximum_iops=ebs.get('MaximumIops', 0),
                        baseline_throughput=mebibytes_to_bytes(
                            ebs.get('BaselineThroughputInMBps', 0)
                        ),
                        maximum_throughput=mebibytes_to_bytes(
                            ebs.get('MaximumThroughputInMBps', 0)
                        ),
                    )
                )

        logger.debug(f'Fetched capabilities of {len(capacities)} instance classes')
        return capacities

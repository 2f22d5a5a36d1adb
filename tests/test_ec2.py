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

"""Tests for the ec2 module."""

import pytest
from awslabs.prometheus_rds_exporter.ec2 import (
    MAX_INSTANCE_TYPES_PER_REQUEST,
    InstanceTypeFetcher,
    to_ec2_instance_type,
    to_rds_instance_class,
)
from awslabs.prometheus_rds_exporter.exceptions import AWSAccessDeniedException
from botocore.exceptions import ClientError
from unittest.mock import MagicMock


def describe_instance_types(InstanceTypes):
    """Answer DescribeInstanceTypes with fixed capabilities for every requested type."""
    return {
        'InstanceTypes': [
            {
                'InstanceType': instance_type,
                'VCpuInfo': {'DefaultVCpus': 2},
                'MemoryInfo': {'SizeInMiB': 8192},
                'EbsInfo': {
                    'EbsOptimizedInfo': {
                        'BaselineBandwidthInMbps': 695,
                        'BaselineThroughputInMBps': 86.875,
                        'BaselineIops': 4000,
                        'MaximumBandwidthInMbps': 2780,
                        'MaximumThroughputInMBps': 347.5,
                        'MaximumIops': 15700,
                    }
                },
            }
            for instance_type in InstanceTypes
        ]
    }


class TestInstanceClassTranslation:
    """Test RDS instance class <-> EC2 instance type translation."""

    @pytest.mark.parametrize(
        'instance_class, instance_type',
        [
            ('db.t3.micro', 't3.micro'),
            ('db.r6g.2xlarge', 'r6g.2xlarge'),
            ('db.m5d.large', 'm5d.large'),
            ('db.x2g.large', 'x2gd.large'),
        ],
    )
    def test_round_trip(self, instance_class, instance_type):
        """Test translating to EC2 and back yields the original class."""
        assert to_ec2_instance_type(instance_class) == instance_type
        assert to_rds_instance_class(instance_type) == instance_class

    def test_exact_prefix_removal(self):
        """Test only the exact db. prefix is removed."""
        assert to_ec2_instance_type('db.d3.xlarge') == 'd3.xlarge'
        assert to_ec2_instance_type('d3.xlarge') == 'd3.xlarge'


class TestInstanceTypeFetcher:
    """Test InstanceTypeFetcher."""

    def test_fetch(self):
        """Test capabilities are converted and keyed by RDS class."""
        client = MagicMock()
        client.describe_instance_types.side_effect = describe_instance_types

        fetcher = InstanceTypeFetcher(client)
        capacities = fetcher.fetch(['db.t3.large', 'db.x2g.large', 'db.t3.large'])

        client.describe_instance_types.assert_called_once_with(
            InstanceTypes=['t3.large', 'x2gd.large']
        )
        assert sorted(capacities) == ['db.t3.large', 'db.x2g.large']
        capacity = capacities['db.x2g.large']
        assert capacity.vcpu == 2
        assert capacity.memory == 8192 * 1024**2
        assert capacity.baseline_iops == 4000
        assert capacity.maximum_iops == 15700
        assert capacity.baseline_throughput == 86.875 * 1024**2
        assert capacity.maximum_throughput == 347.5 * 1024**2
        assert fetcher.api_calls == 1

    @pytest.mark.parametrize('classes, calls', [(0, 0), (1, 1), (100, 1), (101, 2), (250, 3)])
    def test_batches(self, classes, calls):
        """Test instance types are described by batches of 100."""
        client = MagicMock()
        client.describe_instance_types.side_effect = describe_instance_types

        fetcher = InstanceTypeFetcher(client)
        capacities = fetcher.fetch([f'db.m{i}.large' for i in range(classes)])

        assert len(capacities) == classes
        assert client.describe_instance_types.call_count == calls
        assert fetcher.api_calls == calls
        for call in client.describe_instance_types.call_args_list:
            assert len(call.kwargs['InstanceTypes']) <= MAX_INSTANCE_TYPES_PER_REQUEST

    def test_api_error(self):
        """Test DescribeInstanceTypes errors are translated."""
        client = MagicMock()
        client.describe_instance_types.side_effect = ClientError(
            {'Error': {'Code': 'UnauthorizedOperation', 'Message': 'denied'}},
            'DescribeInstanceTypes',
        )

        with pytest.raises(AWSAccessDeniedException):
            InstanceTypeFetcher(client).fetch(['db.t3.large'])

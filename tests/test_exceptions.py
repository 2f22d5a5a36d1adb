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

"""Tests for the exceptions module."""

import pytest
from awslabs.prometheus_rds_exporter.exceptions import (
    AWS_ERROR_MAP,
    AWSAccessDeniedException,
    AWSResourceNotFoundException,
    AWSThrottlingException,
    RDSExporterException,
    ScrapeCancelledError,
    UnknownMetricError,
    translate_error,
)
from botocore.exceptions import ClientError
from datetime import datetime


class TestRDSExporterException:
    """Test base RDSExporterException class."""

    def test_basic_exception(self):
        """Test creating basic exception."""
        exc = RDSExporterException('Test error')
        assert exc.message == 'Test error'
        assert exc.details == {}
        assert exc.suggested_action is None
        assert isinstance(exc.timestamp, datetime)
        assert str(exc) == 'Test error'

    def test_to_dict(self):
        """Test structured representation with details and suggested action."""
        exc = RDSExporterException(
            'Error', details={'source': 'ec2'}, suggested_action='Retry later'
        )

        error_dict = exc.to_dict()

        assert error_dict['error'] is True
        assert error_dict['error_type'] == 'RDSExporterException'
        assert error_dict['details'] == {'source': 'ec2', 'suggested_action': 'Retry later'}

    def test_specialized_exceptions(self):
        """Test exceptions carrying their own context."""
        assert UnknownMetricError('FooBar').details == {'metric_name': 'FooBar'}
        cancelled = ScrapeCancelledError('cloudwatch')
        assert cancelled.source == 'cloudwatch'
        assert 'SCRAPE_TIMEOUT' in cancelled.suggested_action
        assert AWSAccessDeniedException('denied').suggested_action is not None


class TestTranslateError:
    """Test translate_error."""

    @pytest.mark.parametrize(
        'code, exception_class',
        [
            ('DBInstanceNotFound', AWSResourceNotFoundException),
            ('AccessDenied', AWSAccessDeniedException),
            ('ThrottlingException', AWSThrottlingException),
            ('InternalFailure', RDSExporterException),
        ],
    )
    def test_mapping(self, code, exception_class):
        """Test botocore error codes map to exporter exceptions."""
        error = ClientError(
            {
                'Error': {'Code': code, 'Message': 'Something failed'},
                'ResponseMetadata': {'RequestId': 'req-123'},
            },
            'DescribeDBInstances',
        )

        exc = translate_error(error)

        assert type(exc) is exception_class
        assert exc.message == 'DescribeDBInstances failed: Something failed'
        assert exc.details == {
            'error_code': code,
            'operation': 'DescribeDBInstances',
            'aws_request_id': 'req-123',
        }

    def test_explicit_operation(self):
        """Test the operation name can be overridden."""
        error = ClientError({'Error': {'Code': 'Throttling'}}, 'GetMetricData')

        assert translate_error(error, 'usage').details['operation'] == 'usage'

    def test_error_map_targets(self):
        """Test every mapped class derives from RDSExporterException."""
        assert all(issubclass(cls, RDSExporterException) for cls in AWS_ERROR_MAP.values())

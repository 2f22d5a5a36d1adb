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

"""Tests for the pi module."""

import pytest
from awslabs.prometheus_rds_exporter.exceptions import RDSExporterException
from awslabs.prometheus_rds_exporter.models import InstanceRecord, PerformanceInsightsMetric
from awslabs.prometheus_rds_exporter.pi import (
    MAX_METRICS_PER_QUERY,
    PerformanceInsightsFetcher,
    fill_metrics,
)
from botocore.exceptions import ClientError
from unittest.mock import MagicMock


def get_resource_metrics(MetricQueries, **kwargs):
    """Answer GetResourceMetrics with two data points per requested metric."""
    return {
        'MetricList': [
            {
                'Key': {'Metric': query['Metric']},
                'DataPoints': [{'Value': 1.0}, {'Value': 7.0}],
            }
            for query in MetricQueries
        ]
    }


def instance(dbidentifier, enabled):
    """Build an instance with or without Performance Insights."""
    return InstanceRecord(
        dbidentifier=dbidentifier,
        dbi_resource_id=f'db-{dbidentifier.upper()}',
        instance_class='db.t3.large',
        performance_insights_enabled=enabled,
    )


class TestFillMetrics:
    """Test fill_metrics."""

    def test_last_data_point(self):
        """Test the last data point wins and missing values are 0."""
        record = fill_metrics(
            [
                {
                    'Key': {'Metric': 'db.SQL.tup_fetched.avg'},
                    'DataPoints': [{'Value': 1.0}, {'Value': 3.5}],
                },
                {'Key': {'Metric': 'db.Temp.temp_files.avg'}, 'DataPoints': []},
            ]
        )

        assert record == {
            PerformanceInsightsMetric.SQL_TUP_FETCHED: 3.5,
            PerformanceInsightsMetric.TEMP_FILES: 0.0,
        }

    def test_unknown_metric_is_ignored(self):
        """Test names outside the catalog are dropped."""
        record = fill_metrics(
            [{'Key': {'Metric': 'db.Unknown.counter.avg'}, 'DataPoints': [{'Value': 1.0}]}]
        )

        assert record == {}


class TestPerformanceInsightsFetcher:
    """Test PerformanceInsightsFetcher."""

    def test_fetch(self):
        """Test only opted-in instances are queried, in batches of 15 metrics."""
        client = MagicMock()
        client.get_resource_metrics.side_effect = get_resource_metrics
        instances = {'db-1': instance('db-1', True), 'db-2': instance('db-2', False)}

        fetcher = PerformanceInsightsFetcher(client)
        records = fetcher.fetch(instances)

        assert list(records) == ['db-1']
        assert len(records['db-1']) == len(PerformanceInsightsMetric)
        assert records['db-1'][PerformanceInsightsMetric.IO_BLKS_READ] == 7.0

        expected_calls = -(-len(PerformanceInsightsMetric) // MAX_METRICS_PER_QUERY)
        assert expected_calls == 3
        assert client.get_resource_metrics.call_count == expected_calls
        assert fetcher.api_calls == expected_calls
        for call in client.get_resource_metrics.call_args_list:
            assert call.kwargs['ServiceType'] == 'RDS'
            assert call.kwargs['Identifier'] == 'db-DB-1'
            assert call.kwargs['PeriodInSeconds'] == 60
            assert len(call.kwargs['MetricQueries']) <= MAX_METRICS_PER_QUERY

    def test_no_opted_in_instance(self):
        """Test no call is made when no instance enabled Performance Insights."""
        client = MagicMock()

        assert PerformanceInsightsFetcher(client).fetch({'db-1': instance('db-1', False)}) == {}
        client.get_resource_metrics.assert_not_called()

    def test_api_error(self):
        """Test GetResourceMetrics errors abort the fetch."""
        client = MagicMock()
        client.get_resource_metrics.side_effect = ClientError(
            {'Error': {'Code': 'InvalidArgumentException', 'Message': 'bad'}},
            'GetResourceMetrics',
        )

        with pytest.raises(RDSExporterException, match='GetResourceMetrics failed'):
            PerformanceInsightsFetcher(client).fetch({'db-1': instance('db-1', True)})

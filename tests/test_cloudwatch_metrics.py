"""
Tests for CloudWatchMetrics
"""
from unittest.mock import patch

import pytest
from botocore.exceptions import ClientError

from query_analyser.cloudwatch_metrics import CloudWatchMetrics


@pytest.fixture
def production(monkeypatch):
    monkeypatch.setenv('ENVIRONMENT', 'production')


class TestCloudWatchMetrics:

    def test_disabled_outside_production(self, monkeypatch):
        monkeypatch.delenv('ENVIRONMENT', raising=False)
        with patch('query_analyser.cloudwatch_metrics.boto3') as mock_boto3:
            metrics = CloudWatchMetrics()

            assert not metrics.enabled
            assert metrics.record_query_analysis('query.select.001', 'select', 0.1, 0.2) is False
            mock_boto3.client.assert_not_called()

    def test_query_timings(self, production):
        with patch('query_analyser.cloudwatch_metrics.boto3') as mock_boto3:
            metrics = CloudWatchMetrics(namespace='Test')

            assert metrics.record_query_analysis('query.select.001', 'select', 0.1, 0.2)

            kwargs = mock_boto3.client.return_value.put_metric_data.call_args.kwargs
            assert kwargs['Namespace'] == 'Test'
            names = [point['MetricName'] for point in kwargs['MetricData']]
            assert names == ['QueryPlanningTime', 'QueryExecutionTime']
            assert {'Name': 'QueryID', 'Value': 'query.select.001'} in kwargs['MetricData'][0]['Dimensions']

    def test_missing_timings_not_published(self, production):
        with patch('query_analyser.cloudwatch_metrics.boto3') as mock_boto3:
            metrics = CloudWatchMetrics()

            assert metrics.record_query_analysis('query.delete.001', 'delete', None, None) is False
            mock_boto3.client.return_value.put_metric_data.assert_not_called()

    def test_batches_of_twenty(self, production):
        with patch('query_analyser.cloudwatch_metrics.boto3') as mock_boto3:
            metrics = CloudWatchMetrics()

            metrics.put_metrics([{'MetricName': 'M', 'Value': i} for i in range(45)])

            calls = mock_boto3.client.return_value.put_metric_data.call_args_list
            assert [len(c.kwargs['MetricData']) for c in calls] == [20, 20, 5]

    def test_publish_failure_is_logged(self, production):
        with patch('query_analyser.cloudwatch_metrics.boto3') as mock_boto3:
            mock_boto3.client.return_value.put_metric_data.side_effect = ClientError(
                {'Error': {'Code': 'Throttling', 'Message': 'slow down'}}, 'PutMetricData'
            )
            metrics = CloudWatchMetrics()

            assert metrics.record_batch_analysis(3, 2, 1, 0.5, 1, 0) is False

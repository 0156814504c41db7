"""
CloudWatch Metrics Publisher

Publishes query timings and suggestion counts of analysis runs to AWS
CloudWatch. Publishing is only active in production and staging environments.
"""
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

# CloudWatch accepts at most 20 data points per PutMetricData call
MAX_BATCH_SIZE = 20


class CloudWatchMetrics:
    """
    Publishes analysis metrics to CloudWatch

    Tracks:
    - Planning and execution time per analysed query
    - Query counts, unsupported statements and duration per run
    - Index suggestions and HOT-risk columns per run
    """

    def __init__(
        self,
        namespace: Optional[str] = None,
        region: Optional[str] = None,
        enabled: bool = True
    ):
        """
        Initialize CloudWatch metrics publisher

        Args:
            namespace: CloudWatch namespace (default: CLOUDWATCH_NAMESPACE env var)
            region: AWS region (default: AWS_REGION env var)
            enabled: Allow publishing; it still requires ENVIRONMENT to be production or staging
        """
        self.namespace = namespace or os.getenv('CLOUDWATCH_NAMESPACE', 'QueryAnalyser')
        self.region = region or os.getenv('AWS_REGION', 'us-east-1')
        self.enabled = enabled and os.getenv('ENVIRONMENT') in ['production', 'staging']
        self.client = None

        if self.enabled:
            try:
                self.client = boto3.client('cloudwatch', region_name=self.region)
            except (BotoCoreError, ClientError) as e:
                logger.warning("Failed to initialize CloudWatch client: %s", e)
                self.enabled = False

    def put_metrics(self, metrics: List[Dict[str, Any]]) -> bool:
        """
        Publish metric data points

        Args:
            metrics: Dicts with MetricName, Value and optionally Unit and
                Dimensions (as a plain name -> value dict)

        Returns:
            True if every batch was accepted
        """
        if not self.enabled or not metrics:
            return False

        timestamp = datetime.now(timezone.utc)
        data = []
        for metric in metrics:
            point = {
                'MetricName': metric['MetricName'],
                'Value': metric['Value'],
                'Unit': metric.get('Unit', 'None'),
                'Timestamp': metric.get('Timestamp', timestamp),
            }
            dimensions = metric.get('Dimensions')
            if dimensions:
                point['Dimensions'] = [{'Name': k, 'Value': v} for k, v in dimensions.items()]
            data.append(point)

        try:
            for start in range(0, len(data), MAX_BATCH_SIZE):
                self.client.put_metric_data(
                    Namespace=self.namespace,
                    MetricData=data[start:start + MAX_BATCH_SIZE]
                )
            return True
        except (BotoCoreError, ClientError) as e:
            logger.error("Error publishing metrics: %s", e)
            return False

    def record_query_analysis(
        self,
        query_id: str,
        statement_kind: str,
        planning_time_ms: Optional[float],
        execution_time_ms: Optional[float]
    ) -> bool:
        """
        Record the timings of one analysed query

        Missing timings (plans without ANALYZE) are not published.
        """
        dimensions = {'QueryID': query_id, 'StatementKind': statement_kind}
        metrics = []
        if planning_time_ms is not None:
            metrics.append({
                'MetricName': 'QueryPlanningTime',
                'Value': planning_time_ms,
                'Unit': 'Milliseconds',
                'Dimensions': dimensions,
            })
        if execution_time_ms is not None:
            metrics.append({
                'MetricName': 'QueryExecutionTime',
                'Value': execution_time_ms,
                'Unit': 'Milliseconds',
                'Dimensions': dimensions,
            })
        return self.put_metrics(metrics)

    def record_batch_analysis(
        self,
        total_queries: int,
        analysed_queries: int,
        unsupported_queries: int,
        duration_seconds: float,
        index_suggestions: int,
        hot_risk_columns: int
    ) -> bool:
        """
        Record the totals of an analysis run

        Returns:
            True if successful
        """
        metrics = [
            {'MetricName': 'BatchAnalysisQueries', 'Value': total_queries, 'Unit': 'Count'},
            {'MetricName': 'BatchAnalysisAnalysed', 'Value': analysed_queries, 'Unit': 'Count'},
            {'MetricName': 'BatchAnalysisUnsupported', 'Value': unsupported_queries, 'Unit': 'Count'},
            {'MetricName': 'BatchAnalysisDuration', 'Value': duration_seconds, 'Unit': 'Seconds'},
            {'MetricName': 'IndexSuggestions', 'Value': index_suggestions, 'Unit': 'Count'},
            {'MetricName': 'HotRiskColumns', 'Value': hot_risk_columns, 'Unit': 'Count'},
        ]
        return self.put_metrics(metrics)


_cloudwatch_metrics: Optional[CloudWatchMetrics] = None


def get_cloudwatch_metrics() -> CloudWatchMetrics:
    """Shared publisher, created on first use"""
    global _cloudwatch_metrics
    if _cloudwatch_metrics is None:
        _cloudwatch_metrics = CloudWatchMetrics()
    return _cloudwatch_metrics

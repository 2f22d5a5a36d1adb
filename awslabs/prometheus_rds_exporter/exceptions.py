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

"""Exception hierarchy for the Prometheus RDS exporter.

AWS SDK errors are translated into exporter exceptions so that the
orchestrator can tell tolerated conditions (a log file listing for an
instance that is still being created) from failures of a whole source.
"""

from botocore.exceptions import ClientError
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class RDSExporterException(Exception):
    """Base exception for the RDS exporter."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        suggested_action: Optional[str] = None,
    ):
        """Initialize base exception.

        Args:
            message: Error message
            details: Additional error details
            suggested_action: Suggested action to resolve the error
        """
        self.message = message
        self.details = details or {}
        self.suggested_action = suggested_action
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to structured dictionary.

        Returns:
            Dictionary representation of the error
        """
        error_dict: Dict[str, Any] = {
            'error': True,
            'error_type': self.__class__.__name__,
            'message': self.message,
            'timestamp': self.timestamp.isoformat(),
        }

        if self.details:
            error_dict['details'] = dict(self.details)

        if self.suggested_action:
            error_dict.setdefault('details', {})
            error_dict['details']['suggested_action'] = self.suggested_action

        return error_dict


class AWSResourceNotFoundException(RDSExporterException):
    """AWS resource does not exist (or does not exist yet)."""

    pass


class AWSAccessDeniedException(RDSExporterException):
    """Credentials lack a permission required by a fetcher."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """Initialize access denied exception.

        Args:
            message: Error message
            details: Additional error details
        """
        super().__init__(
            message,
            details=details,
            suggested_action='Grant the read-only permissions listed in the README to the exporter role',
        )


class AWSThrottlingException(RDSExporterException):
    """AWS API rate limit exceeded after botocore retries."""

    pass


class UnknownMetricError(RDSExporterException):
    """A remote API returned a metric outside of the fixed catalog."""

    def __init__(self, metric_name: str):
        """Initialize unknown metric exception.

        Args:
            metric_name: The unrecognized metric name
        """
        self.metric_name = metric_name
        super().__init__(
            f"Can't process '{metric_name}' metric: unknown metric",
            details={'metric_name': metric_name},
        )


class QuotaError(RDSExporterException):
    """Service Quotas returned no value or an in-band error for a quota."""

    pass


class ScrapeCancelledError(RDSExporterException):
    """The scrape deadline expired before the fetcher completed."""

    def __init__(self, source: str):
        """Initialize cancellation exception.

        Args:
            source: Name of the source whose fetch was interrupted
        """
        self.source = source
        super().__init__(
            f'{source} fetch cancelled: scrape deadline exceeded',
            details={'source': source},
            suggested_action='Increase PROMETHEUS_RDS_EXPORTER_SCRAPE_TIMEOUT',
        )


# AWS Error Code Mapping
# Used by translate_error to turn botocore errors into exporter exceptions
AWS_ERROR_MAP = {
    'DBInstanceNotFound': AWSResourceNotFoundException,
    'DBInstanceNotFoundFault': AWSResourceNotFoundException,
    'DBClusterNotFoundFault': AWSResourceNotFoundException,
    'NoSuchResourceException': AWSResourceNotFoundException,
    'NotAuthorized': AWSAccessDeniedException,
    'AccessDenied': AWSAccessDeniedException,
    'AccessDeniedException': AWSAccessDeniedException,
    'UnauthorizedOperation': AWSAccessDeniedException,
    'Throttling': AWSThrottlingException,
    'ThrottlingException': AWSThrottlingException,
    'RequestLimitExceeded': AWSThrottlingException,
    'TooManyRequestsException': AWSThrottlingException,
}


def translate_error(error: ClientError, operation: Optional[str] = None) -> RDSExporterException:
    """Translate AWS SDK error to exporter exception.

    Args:
        error: botocore ClientError
        operation: Name of the API operation that failed

    Returns:
        The matching RDSExporterException subclass instance
    """
    error_code = error.response.get('Error', {}).get('Code', 'Unknown')
    error_message = error.response.get('Error', {}).get('Message', 'Unknown error')
    request_id = error.response.get('ResponseMetadata', {}).get('RequestId')
    operation = operation or error.operation_name

    exception_class = AWS_ERROR_MAP.get(error_code, RDSExporterException)

    return exception_class(
        message=f'{operation} failed: {error_message}',
        details={
            'error_code': error_code,
            'operation': operation,
            'aws_request_id': request_id,
        },
    )

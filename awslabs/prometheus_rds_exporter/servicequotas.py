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

"""Service Quotas of the RDS service."""

import threading
from awslabs.prometheus_rds_exporter.exceptions import QuotaError, translate_error
from awslabs.prometheus_rds_exporter.models import QuotaRecord
from awslabs.prometheus_rds_exporter.unit import gibibytes_to_bytes
from awslabs.prometheus_rds_exporter.utils import raise_if_cancelled
from botocore.exceptions import ClientError
from loguru import logger
from typing import Any, Optional


SOURCE = 'servicequotas'

RDS_SERVICE_CODE = 'rds'

# Listed with "aws service-quotas list-service-quotas --service-code rds"
DB_INSTANCES_QUOTA_CODE = 'L-7B6409FD'
TOTAL_STORAGE_QUOTA_CODE = 'L-7ADDB58A'
MANUAL_DB_INSTANCE_SNAPSHOTS_QUOTA_CODE = 'L-272F1212'


class ServiceQuotaFetcher:
    """Fetch RDS quotas of the account, all or nothing."""

    def __init__(self, client: Any, cancel_event: Optional[threading.Event] = None):
        """Initialize the fetcher.

        Args:
            client: boto3 service-quotas client
            cancel_event: Set when the scrape deadline expires
        """
        self.client = client
        self.cancel_event = cancel_event
        self.api_calls = 0

    def get_quota(self, service_code: str, quota_code: str) -> float:
        """Return the value of one quota.

        Raises:
            QuotaError: If the quota is missing or the response carries an error
            RDSExporterException: If the GetServiceQuota call fails
        """
        raise_if_cancelled(self.cancel_event, SOURCE)
        self.api_calls += 1
        try:
            response = self.client.get_service_quota(
                ServiceCode=service_code, QuotaCode=quota_code
            )
        except ClientError as e:
            raise translate_error(e) from e

        quota = response.get('Quota')
        if not quota or 'Value' not in quota:
            raise QuotaError(
                f'No quota for {service_code}/{quota_code}',
                details={'service_code': service_code, 'quota_code': quota_code},
            )

        # The payload reports errors such as a missing permission in-band
        error_reason = quota.get('ErrorReason')
        if error_reason:
            logger.error(
                f'AWS quota error for {service_code}/{quota_code}: '
                f'{error_reason.get("ErrorCode")} {error_reason.get("ErrorMessage")}'
            )
            raise QuotaError(
                f"Can't get {service_code}/{quota_code} service quota",
                details={
                    'service_code': service_code,
                    'quota_code': quota_code,
                    'error_code': error_reason.get('ErrorCode'),
                },
            )

        return quota['Value']

    def fetch(self) -> QuotaRecord:
        """Fetch the DB instances, total storage and manual snapshots quotas."""
        db_instances = self.get_quota(RDS_SERVICE_CODE, DB_INSTANCES_QUOTA_CODE)
        total_storage = self.get_quota(RDS_SERVICE_CODE, TOTAL_STORAGE_QUOTA_CODE)
        manual_snapshots = self.get_quota(
            RDS_SERVICE_CODE, MANUAL_DB_INSTANCE_SNAPSHOTS_QUOTA_CODE
        )

        return QuotaRecord(
            db_instances=db_instances,
            total_storage=gibibytes_to_bytes(total_storage),
            manual_db_instance_snapshots=manual_snapshots,
        )

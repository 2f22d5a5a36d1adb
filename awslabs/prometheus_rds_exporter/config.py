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

"""Configuration management for the Prometheus RDS exporter.

Uses Pydantic for type-safe configuration with environment variable support.
Every field can be set through a PROMETHEUS_RDS_EXPORTER_ prefixed variable,
e.g. PROMETHEUS_RDS_EXPORTER_COLLECT_QUOTAS=false.
"""

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Dict, List, Literal, Optional


class ExporterConfig(BaseSettings):
    """Configuration for the Prometheus RDS exporter."""

    model_config = SettingsConfigDict(
        env_prefix='PROMETHEUS_RDS_EXPORTER_',
        case_sensitive=False,
        validate_assignment=True,
        extra='ignore',
    )

    # AWS Configuration
    aws_region: Optional[str] = Field(
        default=None, description='AWS region to monitor (defaults to the session region)'
    )
    aws_profile: Optional[str] = Field(default=None, description='AWS credentials profile name')
    aws_assume_role_arn: Optional[str] = Field(
        default=None, description='AWS IAM ARN role to assume to fetch metrics'
    )
    aws_assume_role_session: str = Field(
        default='prometheus-rds-exporter', description='AWS assume role session name'
    )
    max_retries: int = Field(default=3, ge=0, le=10, description='botocore max retry attempts')
    retry_mode: Literal['legacy', 'standard', 'adaptive'] = Field(
        default='standard', description='botocore retry mode'
    )
    connect_timeout: int = Field(default=5, ge=1, description='AWS connect timeout (seconds)')
    read_timeout: int = Field(default=10, ge=1, description='AWS read timeout (seconds)')

    # HTTP Configuration
    listen_address: str = Field(default='0.0.0.0', description='Address to listen on')
    listen_port: int = Field(default=9043, ge=1, le=65535, description='Port to listen on')
    metrics_path: str = Field(default='/metrics', description='Path under which to expose metrics')
    scrape_timeout: float = Field(
        default=60, gt=0, le=600, description='Deadline for one scrape of all sources (seconds)'
    )

    # Collection toggles
    collect_instance_metrics: bool = Field(
        default=True, description='Collect AWS instance metrics from CloudWatch'
    )
    collect_instance_tags: bool = Field(default=True, description='Collect AWS RDS tags')
    collect_instance_types: bool = Field(default=True, description='Collect AWS instance types')
    collect_logs_size: bool = Field(default=True, description='Collect AWS instances logs size')
    collect_maintenances: bool = Field(
        default=True, description='Collect AWS instances maintenances'
    )
    collect_quotas: bool = Field(default=True, description='Collect AWS RDS quotas')
    collect_usages: bool = Field(default=True, description='Collect AWS RDS usages')
    collect_performance_insights: bool = Field(
        default=False, description='Collect Performance Insights engine counters'
    )
    tag_selections: Dict[str, List[str]] = Field(
        default_factory=dict,
        description='Only collect instances whose tags match (key to accepted values)',
    )

    # Logging Configuration
    debug: bool = Field(default=False, description='Enable debug mode')
    log_level: Literal['DEBUG', 'INFO', 'WARNING', 'ERROR'] = Field(
        default='INFO', description='Logging level'
    )
    log_format: Literal['text', 'json'] = Field(default='json', description='Log format')

    @field_validator('metrics_path')
    @classmethod
    def validate_metrics_path(cls, v: str) -> str:
        """Validate that the metrics path is absolute and not the homepage."""
        if not v.startswith('/') or v == '/':
            raise ValueError(f'Invalid metrics path: {v}. Must start with / and not be /')
        return v

    @model_validator(mode='after')
    def apply_debug(self) -> 'ExporterConfig':
        """Force DEBUG level when debug mode is enabled."""
        if self.debug and self.log_level != 'DEBUG':
            self.log_level = 'DEBUG'
        return self

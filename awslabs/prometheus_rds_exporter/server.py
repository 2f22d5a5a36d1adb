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

"""HTTP entry point of the Prometheus RDS exporter."""

import argparse
import html
import sys
from awslabs.prometheus_rds_exporter import __version__
from awslabs.prometheus_rds_exporter.collector import RDSCollector
from awslabs.prometheus_rds_exporter.config import ExporterConfig
from awslabs.prometheus_rds_exporter.connection import AWSConnectionManager
from awslabs.prometheus_rds_exporter.logger import configure_logging
from awslabs.prometheus_rds_exporter.orchestrator import ScrapeOrchestrator
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger
from prometheus_client import CollectorRegistry, make_wsgi_app
from prometheus_client.exposition import ThreadingWSGIServer
from pydantic import ValidationError
from typing import Any, Callable, Dict, Iterable, List, Optional
from wsgiref.simple_server import WSGIRequestHandler, make_server


CONFIG_ERROR_EXIT_CODE = 1
HTTP_ERROR_EXIT_CODE = 2
AWS_ERROR_EXIT_CODE = 4

HOMEPAGE = """<html>
    <head>
        <title>Prometheus RDS Exporter</title>
    </head>
    <body>
        <h1>Prometheus RDS Exporter ({version})</h1>
        <p><a href='{metrics_path}'>Metrics</a></p>
    </body>
</html>"""


class LoguruRequestHandler(WSGIRequestHandler):
    """Request handler sending access logs to loguru instead of stderr."""

    def log_message(self, format: str, *args: Any) -> None:
        """Log one request at debug level."""
        logger.debug(f'{self.address_string()} {format % args}')


def create_app(registry: CollectorRegistry, metrics_path: str) -> Callable:
    """Create the WSGI application serving the homepage and the metrics.

    Args:
        registry: Registry holding the RDS collector
        metrics_path: Path under which metrics are exposed

    Returns:
        WSGI application
    """
    metrics_app = make_wsgi_app(registry)
    homepage = HOMEPAGE.format(
        version=html.escape(__version__), metrics_path=html.escape(metrics_path, quote=True)
    ).encode('utf-8')

    def app(environ: Dict[str, Any], start_response: Callable) -> Iterable[bytes]:
        path = environ.get('PATH_INFO', '/')
        if path == metrics_path:
            return metrics_app(environ, start_response)
        if path == '/':
            start_response('200 OK', [('Content-Type', 'text/html; charset=UTF-8')])
            return [homepage]
        start_response('404 Not Found', [('Content-Type', 'text/plain; charset=UTF-8')])
        return [b'Not Found']

    return app


def parse_tag_selections(values: Optional[List[str]]) -> Optional[Dict[str, List[str]]]:
    """Parse repeated KEY=VALUE[,VALUE...] arguments into tag selections.

    Raises:
        ValueError: If an argument has no '=' or an empty key
    """
    if not values:
        return None

    selections: Dict[str, List[str]] = {}
    for value in values:
        key, separator, accepted = value.partition('=')
        if not separator or not key:
            raise ValueError(f'Invalid tag selection: {value}. Expected KEY=VALUE[,VALUE...]')
        selections.setdefault(key, []).extend(v for v in accepted.split(',') if v)
    return selections


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser, every option overrides its environment variable."""
    parser = argparse.ArgumentParser(
        description='Prometheus exporter for Amazon RDS instances, quotas and usage'
    )
    parser.add_argument('--aws-region', help='AWS region to monitor')
    parser.add_argument('--aws-profile', help='AWS credentials profile name')
    parser.add_argument(
        '--aws-assume-role-arn', help='AWS IAM ARN role to assume to fetch metrics'
    )
    parser.add_argument('--aws-assume-role-session', help='AWS assume role session name')
    parser.add_argument('--listen-address', help='Address to listen on')
    parser.add_argument('--listen-port', type=int, help='Port to listen on')
    parser.add_argument('--metrics-path', help='Path under which to expose metrics')
    parser.add_argument('--scrape-timeout', type=float, help='Deadline of one scrape in seconds')
    for name, help_text in (
        ('collect-instance-metrics', 'Collect AWS instance metrics from CloudWatch'),
        ('collect-instance-tags', 'Collect AWS RDS tags'),
        ('collect-instance-types', 'Collect AWS instance types'),
        ('collect-logs-size', 'Collect AWS instances logs size'),
        ('collect-maintenances', 'Collect AWS instances maintenances'),
        ('collect-quotas', 'Collect AWS RDS quotas'),
        ('collect-usages', 'Collect AWS RDS usages'),
        ('collect-performance-insights', 'Collect Performance Insights engine counters'),
    ):
        parser.add_argument(f'--{name}', action=argparse.BooleanOptionalAction, help=help_text)
    parser.add_argument(
        '--tag-selection',
        action='append',
        dest='tag_selections',
        metavar='KEY=VALUE[,VALUE...]',
        help='Only collect instances with a matching tag, can be repeated',
    )
    parser.add_argument('--debug', action='store_true', default=None, help='Enable debug mode')
    parser.add_argument('--log-format', choices=['text', 'json'], help='Log format')
    return parser


def load_config(argv: Optional[List[str]] = None) -> ExporterConfig:
    """Build the configuration from command line arguments and environment variables."""
    args = vars(build_parser().parse_args(argv))
    args['tag_selections'] = parse_tag_selections(args['tag_selections'])
    return ExporterConfig(**{key: value for key, value in args.items() if value is not None})


def main(argv: Optional[List[str]] = None) -> None:
    """Run the exporter HTTP server."""
    try:
        config = load_config(argv)
    except (ValidationError, ValueError) as e:
        logger.error(f'Invalid configuration: {e}')
        sys.exit(CONFIG_ERROR_EXIT_CODE)

    configure_logging(config.log_level, config.log_format)

    connection = AWSConnectionManager(config)
    try:
        account_id = connection.get_account_id()
        region = connection.region
    except (BotoCoreError, ClientError) as e:
        logger.error(f'Unable to get AWS account information: {e}')
        sys.exit(AWS_ERROR_EXIT_CODE)

    if not region:
        logger.error('No AWS region configured, set --aws-region or AWS_REGION')
        sys.exit(CONFIG_ERROR_EXIT_CODE)

    registry = CollectorRegistry()
    registry.register(
        RDSCollector(ScrapeOrchestrator(connection, config), account_id, region, config)
    )

    try:
        httpd = make_server(
            config.listen_address,
            config.listen_port,
            create_app(registry, config.metrics_path),
            ThreadingWSGIServer,
            handler_class=LoguruRequestHandler,
        )
    except OSError as e:
        logger.error(f"Can't start web server on {config.listen_address}:{config.listen_port}: {e}")
        sys.exit(HTTP_ERROR_EXIT_CODE)

    logger.info(
        f'Exporting RDS metrics of account {account_id} in {region} on '
        f'http://{config.listen_address}:{config.listen_port}{config.metrics_path}'
    )
    try:
        httpd.serve_forever()
    except KeyboardInterrupt:
        logger.info('Stopping the web server')
    finally:
        httpd.server_close()
        connection.close()


if __name__ == '__main__':
    main()

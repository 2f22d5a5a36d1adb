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

"""General utility functions shared by the fetchers."""

import threading
from awslabs.prometheus_rds_exporter.exceptions import ScrapeCancelledError
from botocore.client import BaseClient
from typing import Any, Dict, Iterator, List, Optional, Sequence, TypeVar


T = TypeVar('T')


def chunk_by(items: Sequence[T], size: int) -> List[List[T]]:
    """Split items into consecutive batches of at most size elements.

    Args:
        items: Items to split, order is preserved
        size: Maximum number of items per batch

    Returns:
        ceil(len(items) / size) batches, every batch full except possibly the last
    """
    if size < 1:
        raise ValueError(f'Batch size must be positive, got {size}')
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def raise_if_cancelled(cancel_event: Optional[threading.Event], source: str) -> None:
    """Stop a fetcher between two remote calls once the scrape deadline expired.

    Raises:
        ScrapeCancelledError: If the cancellation event is set
    """
    if cancel_event is not None and cancel_event.is_set():
        raise ScrapeCancelledError(source)


def iterate_pages(
    client: BaseClient,
    paginator_name: str,
    operation_parameters: Dict[str, Any],
) -> Iterator[Dict[str, Any]]:
    """Iterate over the raw pages of a paginated AWS API call.

    Every yielded page is one remote call, which lets the caller count calls
    and check for cancellation between pages.

    Args:
        client: Boto3 client to use for the API call
        paginator_name: Name of the paginator to use (e.g. 'describe_db_instances')
        operation_parameters: Parameters to pass to the paginator

    Yields:
        Response pages
    """
    paginator = client.get_paginator(paginator_name)
    yield from paginator.paginate(**operation_parameters)

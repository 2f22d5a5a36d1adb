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

"""Logger configuration following AWS Labs patterns."""

import sys
from loguru import logger


LOG_FORMAT = (
    '<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | '
    '<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>'
)


def configure_logging(level: str = 'INFO', log_format: str = 'text') -> None:
    """Configure the global loguru logger.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: 'text' for human readable lines, 'json' for one JSON record per line
    """
    logger.remove()
    if log_format == 'json':
        logger.add(sys.stderr, level=level, serialize=True)
    else:
        logger.add(sys.stderr, format=LOG_FORMAT, level=level)

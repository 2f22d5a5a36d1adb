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

"""Conversions from AWS API units to the base units exposed to Prometheus."""

from typing import Union


Number = Union[int, float]

UNIT = 1024
SECONDS_PER_DAY = 86400


def gibibytes_to_bytes(value: Number) -> Number:
    """Convert a size in GiB to bytes."""
    return value * UNIT * UNIT * UNIT


def mebibytes_to_bytes(value: Number) -> Number:
    """Convert a size (or a per-second rate) in MiB to bytes."""
    return value * UNIT * UNIT


def kibibytes_to_mebibytes(value: int) -> int:
    """Convert a size in KiB to MiB, truncating any remainder."""
    return value // UNIT


def days_to_seconds(value: int) -> int:
    """Convert a duration in days to seconds."""
    return value * SECONDS_PER_DAY

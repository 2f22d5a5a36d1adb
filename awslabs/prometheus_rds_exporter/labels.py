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

"""Prometheus label name sanitization."""

import re


_INVALID_FIRST_CHARACTER = re.compile(r'^[^a-zA-Z_:]')
_INVALID_CHARACTERS = re.compile(r'[^a-zA-Z0-9_:]+')


def sanitize_label(name: str) -> str:
    """Make free text a valid Prometheus label name.

    An invalid first character is replaced by '_' and every following run of
    invalid characters is collapsed into a single '_', e.g.
    'tag_services.k8s.aws/controller-version' becomes
    'tag_services_k8s_aws_controller_version'.

    Args:
        name: Free text, typically an AWS tag key

    Returns:
        A name matching [a-zA-Z_:][a-zA-Z0-9_:]*
    """
    if not name:
        return '_'
    first = _INVALID_FIRST_CHARACTER.sub('_', name[0])
    return first + _INVALID_CHARACTERS.sub('_', name[1:])

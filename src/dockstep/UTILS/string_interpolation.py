# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
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

"""
Utilities for expanding variable references in strings.
"""
import re
from typing import Dict


class EnvironmentInterpolator:
    """
    Expands ``$VAR``, ``${VAR}``, ``${VAR:-default}`` and ``${VAR:+value}``.
    References to unknown variables are left untouched, so a string that
    mentions a variable the build does not define survives expansion.
    """
    # Group 1: braced name, group 2: - or +, group 3: alternative value,
    # group 4: bare name
    PATTERN = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)(?::(-|\+)([^}]*))?\}|\$([A-Za-z_][A-Za-z0-9_]*)')

    @classmethod
    def expand(cls, template: str, context: Dict[str, str]) -> str:
        """
        Expands variable references in the template using the provided context.

        :param template: The string containing references.
        :param context: The variables available for expansion.
        :return: The expanded string.
        """
        if not template:
            return template

        def replace(match):
            var_name = match.group(1) or match.group(4)
            modifier = match.group(2)
            alt_value = match.group(3)
            value = context.get(var_name)

            if modifier == '-':
                return value if value else alt_value
            if modifier == '+':
                return alt_value if value else ''
            if value is None:
                return match.group(0)
            return value

        return cls.PATTERN.sub(replace, template)

    @classmethod
    def resolve(cls, env: Dict[str, str], max_passes: int = 10) -> Dict[str, str]:
        """
        Resolves references between the values of a variable map, e.g.
        ``{"A": "x", "B": "$A/y"}`` becomes ``{"A": "x", "B": "x/y"}``.
        Cycles stop after ``max_passes`` rounds.

        :param env: The variables to resolve; left unmodified.
        :return: A new, resolved map.
        """
        resolved = dict(env)
        for _ in range(max_passes):
            changed = False
            for key, value in resolved.items():
                others = {k: v for k, v in resolved.items() if k != key}
                expanded = cls.expand(value, others)
                if expanded != value:
                    resolved[key] = expanded
                    changed = True
            if not changed:
                break
        return resolved

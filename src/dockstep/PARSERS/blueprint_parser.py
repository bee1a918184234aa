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
Parsers for .blueprint.yml files.
"""
import os
from typing import Any, Dict

import yaml
from pydantic import ValidationError

from ..errors import ConfigurationError
from ..MODELS.job_spec import Blueprint, JobSpec


class BlueprintParser:
    """
    Parser for blueprint files describing the jobs of a repository.
    """
    def __init__(self, filename: str = ".blueprint.yml"):
        """
        :param filename: Name of the blueprint file inside a workspace.
        """
        self.filename = filename

    def load(self, workspace: str) -> Blueprint:
        """
        Parses the blueprint file of a workspace.

        :param workspace: Directory holding the blueprint file.
        :return: Parsed blueprint.
        :raises ConfigurationError: If the file is missing or invalid.
        """
        if not os.path.isdir(workspace):
            raise ConfigurationError("no such workspace", target=workspace)
        path = os.path.join(workspace, self.filename)
        if not os.path.isfile(path):
            raise ConfigurationError(f"no such {self.filename}", target=workspace)
        with open(path, 'r') as f:
            content = f.read()
        return self.parse_from_string(content, source=path)

    def parse_from_string(self, content: str, source: str = "<string>") -> Blueprint:
        """
        Parses a blueprint from a string.

        :param content: YAML content.
        :param source: Name used in error messages.
        :return: Parsed blueprint.
        """
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"invalid YAML: {e}", target=source) from e
        if not data:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError("top level must be a mapping", target=source)

        jobs = data.get('jobs') or []
        if not isinstance(jobs, list):
            raise ConfigurationError("'jobs' must be a list", target=source)

        try:
            return Blueprint(jobs=[self._parse_job(job) for job in jobs])
        except ValidationError as e:
            raise ConfigurationError(f"invalid job definition: {e}", target=source) from e

    def _parse_job(self, spec: Dict[str, Any]) -> JobSpec:
        """
        Parses a single job, accepting both ``docker`` and ``container`` as
        the name of its container section.
        """
        if not isinstance(spec, dict):
            raise ConfigurationError(f"job entries must be mappings, got {spec!r}")
        return JobSpec.model_validate(spec)

    def load_job(self, workspace: str, name: str) -> JobSpec:
        """
        Loads one job of a workspace's blueprint.

        :param workspace: Directory holding the blueprint file.
        :param name: Job name.
        :return: The job.
        :raises ConfigurationError: If there is no job of that name.
        """
        for job in self.load(workspace).jobs:
            if job.name == name:
                return job
        raise ConfigurationError(f"no such job config in {self.filename}", target=name)

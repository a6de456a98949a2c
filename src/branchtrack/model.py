from pathlib import Path
from typing import Dict, List, Literal, Optional, Union

import pydantic
import yaml

from branchtrack.github.model import RepositoryId


class InvalidConfig(Exception):
    raw_config: Optional[str]
    source: Optional[str]

    def __init__(self, *args, **kwargs):
        self.raw_config = kwargs.pop("raw_config", None)
        self.source = kwargs.pop("source", None)
        super().__init__(*args, **kwargs)


class Model(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(extra="forbid", populate_by_name=True)


class RepositoryConfig(Model):
    base_branch: Optional[str] = pydantic.Field(None, alias="base-branch")
    # pattern -> target templates
    rules: Dict[str, List[str]] = pydantic.Field(default_factory=dict)
    linear_branches: Optional[List[str]] = pydantic.Field(
        None, alias="linear-branches"
    )

    @pydantic.field_validator("rules", mode="before")
    @classmethod
    def _single_target(cls, value):
        if isinstance(value, dict):
            return {
                k: [v] if isinstance(v, str) else v for k, v in value.items()
            }
        return value


class TrackerConfig(Model):
    cron: str = "*/5 * * * *"
    strategy: Literal["fanout", "linear"] = "fanout"
    repositories: Dict[str, RepositoryConfig] = pydantic.Field(default_factory=dict)

    @pydantic.field_validator("repositories")
    @classmethod
    def _repository_names(cls, value: Dict[str, RepositoryConfig]):
        for name in value:
            RepositoryId.parse(name)
        return value

    def repository(self, repository: RepositoryId) -> RepositoryConfig:
        for name, repo_config in self.repositories.items():
            if RepositoryId.parse(name) == repository:
                return repo_config
        return RepositoryConfig()

    def rule_targets(self) -> Dict[RepositoryId, Dict[str, List[str]]]:
        return {
            RepositoryId.parse(name): dict(repo_config.rules)
            for name, repo_config in self.repositories.items()
        }


def parse_config(raw: str, source: Optional[str] = None) -> TrackerConfig:
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise InvalidConfig(str(e), raw_config=raw, source=source) from e

    try:
        return TrackerConfig() if data is None else TrackerConfig.model_validate(data)
    except pydantic.ValidationError as e:
        raise InvalidConfig(str(e), raw_config=raw, source=source) from e


def load_config(path: Union[str, Path]) -> TrackerConfig:
    path = Path(path)
    try:
        raw = path.read_text()
    except OSError as e:
        raise InvalidConfig(f"Cannot read {path}: {e}", source=str(path)) from e
    return parse_config(raw, source=str(path))

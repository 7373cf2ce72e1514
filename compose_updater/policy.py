"""Selection policy loading.

The policy file is a YAML mapping with optional ``include`` and
``exclude`` lists of service names::

    include:
      - web
    exclude:
      - db
"""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from compose_updater.errors import ConfigError
from compose_updater.logging import get_logger
from compose_updater.models import SelectionPolicy

log = get_logger("compose_updater.policy")


class _PolicyFile(BaseModel):
    model_config = ConfigDict(extra="ignore", strict=True)

    include: list[str] = Field(default_factory=list)
    exclude: list[str] = Field(default_factory=list)


def parse_policy(data: object, source: str = "<policy>") -> SelectionPolicy:
    """Validate already-parsed YAML data into a ``SelectionPolicy``."""
    if data is None:
        return SelectionPolicy()
    if not isinstance(data, dict):
        raise ConfigError(f"{source}: policy must be a mapping, got {type(data).__name__}")

    # YAML renders an empty key as null
    cleaned = {key: value for key, value in data.items() if value is not None}
    try:
        parsed = _PolicyFile.model_validate(cleaned)
    except ValidationError as exc:
        raise ConfigError(f"{source}: invalid policy: {exc}") from exc
    return SelectionPolicy.from_lists(parsed.include, parsed.exclude)


def load_policy(path: str | Path) -> SelectionPolicy:
    """Load the selection policy from *path*; a missing file allows everything."""
    policy_path = Path(path)
    if not policy_path.exists():
        log.debug("policy_file_absent", path=str(policy_path))
        return SelectionPolicy()

    try:
        data = yaml.safe_load(policy_path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to read policy file {policy_path}: {exc}") from exc

    policy = parse_policy(data, source=str(policy_path))
    log.debug(
        "policy_loaded",
        path=str(policy_path),
        include=sorted(policy.include),
        exclude=sorted(policy.exclude),
    )
    return policy

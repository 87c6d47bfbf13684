"""sipin_status.config

Topic selection and connection strings.

A subscription either lists its topics explicitly or matches them with a
regex pattern, never both.  Selections can come from the CLI or from a
YAML file:

    topics:
      - public/sipin/s3.object.create
      - public/sipin/bag.transfer

or

    pattern: persistent://public/sipin/.*
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import quote

import yaml

from sipin_status.shared import ConfigError

# Natural order of a workflow's events.
DEFAULT_TOPICS: tuple[str, ...] = (
    # `sipin` namespace
    "public/sipin/s3.object.create",
    "public/sipin/bag.transfer",
    "public/sipin/bag.unzip",
    "public/sipin/bag.validate",
    "public/sipin/sip.validate.xsd",
    "public/sipin/sip.loadgraph",
    "public/sipin/sip.validate.shacl",
    "public/sipin/mh-sip.create",
    "public/sipin/mh-sip.transfer",
    # `default` namespace (legacy SIPIN)
    "public/default/be.meemoo.sipin.sip.create",
    "public/default/be.meemoo.sipin.bag.transfer",
    "public/default/be.meemoo.sipin.bag.unzip",
    "public/default/be.meemoo.sipin.bag.validate",
    "public/default/be.meemoo.sipin.sip.validate",
    "public/default/be.meemoo.sipin.aip.create",
    "public/default/be.meemoo.sipin.aip.transfer",
)


@dataclass(frozen=True)
class TopicSelection:
    topics: tuple[str, ...] = ()
    pattern: str | None = None

    def __post_init__(self) -> None:
        if bool(self.topics) == bool(self.pattern):
            raise ConfigError("exactly one of topics or pattern must be set")
        if self.pattern:
            try:
                re.compile(self.pattern)
            except re.error as exc:
                raise ConfigError(f"invalid topics pattern {self.pattern!r}: {exc}") from exc

    def describe(self) -> str:
        return f"pattern={self.pattern}" if self.pattern else f"topics={list(self.topics)}"


def parse_topic_list(raw: str) -> tuple[str, ...]:
    """Split a comma-separated topic list, dropping blanks."""
    return tuple(t.strip() for t in raw.split(",") if t.strip())


def validate_topic_file(data: Any) -> TopicSelection:
    if not isinstance(data, dict):
        raise ConfigError("topics file must contain a mapping")
    unknown = set(data) - {"topics", "pattern"}
    if unknown:
        raise ConfigError(f"unknown keys in topics file: {sorted(unknown)}")
    topics = data.get("topics") or []
    if not isinstance(topics, list) or not all(isinstance(t, str) for t in topics):
        raise ConfigError("'topics' must be a list of strings")
    pattern = data.get("pattern")
    if pattern is not None and not isinstance(pattern, str):
        raise ConfigError("'pattern' must be a string")
    return TopicSelection(topics=tuple(topics), pattern=pattern)


def load_topic_selection(yaml_path: Path) -> TopicSelection:
    """Load a TopicSelection from a YAML file.

    Raises:
        ConfigError: if the file content is not a valid selection.
        FileNotFoundError: if the YAML file does not exist.
    """
    try:
        data = yaml.safe_load(yaml_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {yaml_path}: {exc}") from exc
    return validate_topic_file(data)


def resolve_topic_selection(
    topics: str | None,
    pattern: str | None,
    topics_file: Path | None,
) -> TopicSelection:
    """Pick the selection from file, pattern, explicit list or the defaults, in that order."""
    if topics_file is not None:
        return load_topic_selection(topics_file)
    if pattern:
        return TopicSelection(pattern=pattern)
    if topics:
        return TopicSelection(topics=parse_topic_list(topics))
    return TopicSelection(topics=DEFAULT_TOPICS)


# ---------------------------------------------------------------------------
# Connection strings
# ---------------------------------------------------------------------------

def pulsar_service_url(host: str, port: str | int) -> str:
    return f"pulsar://{host}:{port}"


def postgres_dsn(user: str, password: str, host: str, database: str) -> str:
    return (
        f"postgresql://{quote(user, safe='')}:{quote(password, safe='')}"
        f"@{host}/{quote(database, safe='')}"
    )

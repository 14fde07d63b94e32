"""Policy sources — where a refreshable PolicyStore loads policies from."""

from __future__ import annotations

import json
import os
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from sqla_abac.exceptions import InvalidInput
from sqla_abac.policy._base import Policy

__all__ = [
    "JsonFilePolicySource",
    "PolicySource",
    "StaticPolicySource",
    "policies_from_documents",
]


@runtime_checkable
class PolicySource(Protocol):
    """Anything that can produce the full, current policy set."""

    def load(self) -> Sequence[Policy]: ...


def policies_from_documents(documents: Iterable[Mapping[str, Any]]) -> list[Policy]:
    """Build policies from plain documents (see :meth:`Policy.from_dict`).

    Raises:
        InvalidInput: If any document is malformed.

    Example::

        policies_from_documents([
            {"id": "read-all", "model": "colleges", "actions": ["read"]},
        ])
    """
    policies: list[Policy] = []
    for position, doc in enumerate(documents):
        if not isinstance(doc, Mapping):
            raise InvalidInput(f"Policy document #{position} is not a mapping: {doc!r}")
        policies.append(Policy.from_dict(doc))
    return policies


class StaticPolicySource:
    """A fixed, in-memory policy set."""

    def __init__(self, policies: Iterable[Policy]) -> None:
        self._policies = tuple(policies)

    def load(self) -> Sequence[Policy]:
        return self._policies

    def __repr__(self) -> str:
        return f"StaticPolicySource({len(self._policies)} policies)"


class JsonFilePolicySource:
    """Load policies from a JSON file.

    The file holds either a list of policy documents or an object with a
    ``"policies"`` list. It is re-read on every :meth:`load`.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Sequence[Policy]:
        data = json.loads(self._path.read_text(encoding="utf-8"))
        if isinstance(data, Mapping):
            data = data.get("policies")
        if not isinstance(data, list):
            raise InvalidInput(f"{self._path}: expected a list of policy documents")
        return policies_from_documents(data)

    def __repr__(self) -> str:
        return f"JsonFilePolicySource({str(self._path)!r})"

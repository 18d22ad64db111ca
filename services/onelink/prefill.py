"""Prefill key validation against the keys a survey declares."""

from __future__ import annotations

from typing import Callable, Iterable, Mapping, Protocol, Set

from sqlalchemy import select
from sqlalchemy.orm import Session

from models.one_link import SurveyPrefillKey


class PrefillValidator(Protocol):
    def invalid_keys(self, resource_id: int, keys: Iterable[str]) -> Set[str]: ...


class StaticPrefillValidator:
    """Validator backed by an in-process ``{survey_id: keys}`` registry."""

    def __init__(self, allowed: Mapping[int, Iterable[str]]):
        self._allowed = {int(survey_id): frozenset(keys) for survey_id, keys in allowed.items()}

    def invalid_keys(self, resource_id: int, keys: Iterable[str]) -> Set[str]:
        allowed = self._allowed.get(resource_id, frozenset())
        return {key for key in keys if key not in allowed}


class SqlPrefillValidator:
    """Validator reading ``survey_prefill_keys`` rows."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def invalid_keys(self, resource_id: int, keys: Iterable[str]) -> Set[str]:
        requested = set(keys)
        if not requested:
            return set()
        with self._session_factory() as session:
            rows = session.execute(
                select(SurveyPrefillKey.prefill_key).where(
                    SurveyPrefillKey.survey_id == resource_id,
                    SurveyPrefillKey.prefill_key.in_(requested),
                )
            ).scalars()
            known = set(rows)
        return requested - known


__all__ = ["PrefillValidator", "SqlPrefillValidator", "StaticPrefillValidator"]

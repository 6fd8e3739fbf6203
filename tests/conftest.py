#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime
from typing import Callable

import pytest

from agenda.deletion import DeletionCoordinator
from agenda.materializer import Materializer
from agenda.occurrence import Occurrence
from agenda.service import AgendaService
from agenda.storage import PolarsAgendaStore
from agenda.time_utils import Recurrence
from tests.agenda_utils import ROOT_START, USER_ID


@pytest.fixture()
def store() -> PolarsAgendaStore:
    return PolarsAgendaStore()


@pytest.fixture()
def materializer(store: PolarsAgendaStore) -> Materializer:
    return Materializer(store)


@pytest.fixture()
def coordinator(store: PolarsAgendaStore) -> DeletionCoordinator:
    return DeletionCoordinator(store)


@pytest.fixture()
def service(store: PolarsAgendaStore) -> AgendaService:
    return AgendaService(store)


@pytest.fixture()
def make_occurrence(store: PolarsAgendaStore) -> Callable[..., Occurrence]:
    """Save an occurrence lasting `minutes` from `starts_at` and return it."""

    def _make(
        name: str = "Daily stand-up",
        user_id: str = USER_ID,
        starts_at: datetime.datetime | None = ROOT_START,
        minutes: int = 60,
        recurrence: Recurrence | str = Recurrence.DAILY,
        **fields,
    ) -> Occurrence:
        ends_at = None
        if starts_at is not None:
            ends_at = starts_at + datetime.timedelta(minutes=minutes)
        return store.save(
            Occurrence(
                name=name,
                user_id=user_id,
                starts_at=starts_at,
                ends_at=ends_at,
                recurrence=recurrence,
                **fields,
            )
        )

    return _make


@pytest.fixture()
def daily_root(make_occurrence: Callable[..., Occurrence]) -> Occurrence:
    return make_occurrence(category_id=3, kind="review", discipline_id=11, phase="design")

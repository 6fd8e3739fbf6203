#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
from agenda.storage.database_schemas import DatabaseNamespace
from agenda.storage.polars_store import PolarsAgendaStore
from agenda.storage.port import AgendaStore

__all__ = ["AgendaStore", "DatabaseNamespace", "PolarsAgendaStore"]

#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import logging

import hydra
from omegaconf import DictConfig, OmegaConf

from agenda.endpoints.display import display_occurrences
from agenda.exceptions import AgendaError
from agenda.service import AgendaService
from agenda.storage import PolarsAgendaStore
from agenda.time_utils import parse_date_str

logger = logging.getLogger(__name__)


def _load_service(cfg: DictConfig) -> tuple[AgendaService, PolarsAgendaStore]:
    if cfg.debug:
        logger.info(OmegaConf.to_yaml(cfg, resolve=True))
    store = PolarsAgendaStore.read_snapshot(cfg.snapshot_path)
    return AgendaService(store), store


@hydra.main(config_name="agenda", config_path="pkg://agenda.configs.endpoints")
def materialize(cfg: DictConfig):
    """Create the recurring occurrences of a user falling in a window, save the
    store and print the window."""
    service, store = _load_service(cfg)
    window_start = parse_date_str(str(cfg.window_start))
    window_end = parse_date_str(str(cfg.window_end))
    occurrences = service.list_range(cfg.user_id, window_start, window_end)
    store.write_snapshot(cfg.snapshot_path)
    logger.info(f"Saved agenda snapshot to {cfg.snapshot_path}")
    display_occurrences(
        occurrences, title=f"Agenda of {cfg.user_id}, {window_start} to {window_end}"
    )


@hydra.main(config_name="agenda", config_path="pkg://agenda.configs.endpoints")
def delete(cfg: DictConfig):
    """Delete an occurrence with the configured scope and save the store."""
    if cfg.occurrence_id is None:
        raise ValueError("Set occurrence_id=<id> to choose the occurrence to delete")
    service, store = _load_service(cfg)
    try:
        service.delete_instance(int(cfg.occurrence_id), cfg.scope)
    except AgendaError as e:
        logger.error(f"Could not delete occurrence {cfg.occurrence_id}: {e}")
        raise
    store.write_snapshot(cfg.snapshot_path)
    logger.info(
        f"Deleted occurrence {cfg.occurrence_id} (scope {cfg.scope}), "
        f"saved agenda snapshot to {cfg.snapshot_path}"
    )


if __name__ == "__main__":
    materialize()

#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
from rich.console import Console
from rich.table import Table

from agenda.occurrence import Occurrence


def _format_instant(occurrence: Occurrence, field: str) -> str:
    value = getattr(occurrence, field)
    return value.strftime("%Y-%m-%d %H:%M") if value is not None else "-"


def display_occurrences(occurrences: list[Occurrence], title: str | None = None):
    """Display occurrences as a rich table with the following format

    ┏━━━━┳━━━━━━━━━━━━━━━━━━┳━━━━━━━━━━━━━━━━━━┳━━━━━━┳━━━━━━━━┳━━━━━━━━━━┳━━━━━━━━┓
    ┃ ID ┃ Starts           ┃ Ends             ┃ Name ┃ Status ┃ Repeats  ┃ Group  ┃
    ┡━━━━╇━━━━━━━━━━━━━━━━━━╇━━━━━━━━━━━━━━━━━━╇━━━━━━╇━━━━━━━━╇━━━━━━━━━━╇━━━━━━━━┩
    """  # noqa

    console = Console()
    table = Table(title=title, show_header=True, header_style="bold magenta", expand=True)

    table.add_column("ID", justify="right", style="cyan", no_wrap=True)
    table.add_column("Starts", no_wrap=True)
    table.add_column("Ends", no_wrap=True)
    table.add_column("Name", style="white")
    table.add_column("Status", justify="center")
    table.add_column("Repeats", style="dim")
    # the root's own row shows "root", children show the id of their root
    table.add_column("Group", justify="right", style="dim")

    for occurrence in occurrences:
        if occurrence.is_group_root:
            group = "root"
        elif occurrence.is_child:
            group = str(occurrence.root_id)
        else:
            group = ""
        table.add_row(
            str(occurrence.occurrence_id),
            _format_instant(occurrence, "starts_at"),
            _format_instant(occurrence, "ends_at"),
            occurrence.name,
            "[green]done[/green]" if occurrence.is_done else "open",
            str(occurrence.recurrence),
            group,
        )

    console.print(table)

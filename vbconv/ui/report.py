from typing import List
from rich.markup import escape
from rich.table import Table
from vbconv.domain.models import JobResult


def build_results_table(results: List[JobResult]) -> Table:
    """Summary table, one row per input file, sorted by path."""
    table = Table(title="Conversion results", show_lines=False)
    table.add_column("File", overflow="fold")
    table.add_column("Status")
    table.add_column("Mode")
    table.add_column("Attempts", justify="right")
    table.add_column("Output / Error", overflow="fold")

    for result in sorted(results, key=lambda r: str(r.file_path)):
        if result.success:
            status = "[green]OK[/green]"
            detail = str(result.output_path)
        else:
            status = "[red]FAILED[/red]"
            detail = (result.error_message or "").splitlines()[0] if result.error_message else ""
        mode = result.mode.value if result.mode else "-"
        if result.used_fallback:
            mode += " (fallback)"
        table.add_row(escape(str(result.file_path)), status, mode, str(result.attempts), escape(detail))
    return table

"""Console mirror for dev server output"""

from typing import Optional

from rich.console import Console


class ConsoleSink:
    """Writes dev server lines to a rich console exactly as received"""

    def __init__(self, console: Optional[Console] = None, prefix: str = ""):
        self.console = console or Console()
        self.prefix = prefix
        self.lines_written = 0

    def __call__(self, line: str) -> None:
        # Log lines may contain [brackets]; never interpret them as markup
        self.console.print(f"{self.prefix}{line}", markup=False, highlight=False, soft_wrap=True)
        self.lines_written += 1

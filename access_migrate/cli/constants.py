from rich.console import Console

from access_migrate.utils.logger import StructuredLogger

# Initialize shared objects
console = Console()
logger = StructuredLogger("access_migrate")

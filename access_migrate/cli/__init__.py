import typer

from . import migrate as migrate_cmd, schema, utils

# Create main app
app = typer.Typer(help="Microsoft Access → SQL Server migration tool")

# Register all commands
migrate_cmd.register_migrate_commands(app)
schema.register_schema_commands(app)
utils.register_utils_commands(app)

__all__ = ["app"]

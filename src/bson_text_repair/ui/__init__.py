"""Console surfaces: argparse router and rich-backed renderer."""

from bson_text_repair.ui.cli import CLIError, build_parser, run_cli
from bson_text_repair.ui.render import CLIRenderer, create_renderer

__all__ = [
    "CLIError",
    "CLIRenderer",
    "build_parser",
    "create_renderer",
    "run_cli",
]

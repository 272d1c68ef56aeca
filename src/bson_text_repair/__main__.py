"""Module entrypoint for ``python -m bson_text_repair``."""

from __future__ import annotations

from bson_text_repair.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())

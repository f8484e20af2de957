from __future__ import annotations
import pathlib

DEFAULT_CONFIG_PATH = pathlib.Path("sqltask.config.yml")

# Width of the dashed line written under result-set headers
SEPARATOR_WIDTH = 79

MYSQL_PORT = 3306

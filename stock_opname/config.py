import os
from pathlib import Path

from .constants import DATA_DIR, DB_FILE_NAME

BASE_DIR = Path(__file__).resolve().parent

# STOCK_OPNAME_DATA_DIR relocates the database
DATA_PATH = Path(os.environ.get("STOCK_OPNAME_DATA_DIR", BASE_DIR / DATA_DIR))
DB_PATH = DATA_PATH / DB_FILE_NAME

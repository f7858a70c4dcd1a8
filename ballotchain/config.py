"""
BallotChain v1.0 - Configuration.
Shared settings and paths for the entire codebase.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Base Paths
BALLOTCHAIN_DIR = Path.home() / ".ballotchain"
DEFAULT_DB_PATH = BALLOTCHAIN_DIR / "ballotchain.db"

DEFAULT_CANDIDATES = "candidateA:Alice Smith,candidateB:Bob Johnson,candidateC:Charlie Brown"


def _as_bool(raw: str) -> bool:
    return raw.strip().lower() in ("1", "true", "yes", "on")


def parse_candidates(raw: str) -> list[tuple[str, str]]:
    """Parse ``id:name,id:name`` into ordered (id, name) pairs."""
    roster = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        cid, sep, name = item.partition(":")
        cid = cid.strip()
        if not cid:
            raise ValueError(f"Invalid candidate entry: {item!r}")
        roster.append((cid, name.strip() if sep else cid))
    return roster


def reload() -> None:
    """Re-read every setting from the environment."""
    global DB_PATH, STORAGE_MODE, DIFFICULTY, MINING_REWARD, MINER_ADDRESS
    global AUTO_SEAL, CANDIDATES, ALLOWED_ORIGINS, RATE_LIMIT, RATE_WINDOW

    # Database Configuration
    DB_PATH = os.environ.get("BALLOTCHAIN_DB", str(DEFAULT_DB_PATH))
    STORAGE_MODE = os.environ.get("BALLOTCHAIN_STORAGE", "sqlite")

    # Ledger Configuration
    DIFFICULTY = int(os.environ.get("BALLOTCHAIN_DIFFICULTY", "3"))
    MINING_REWARD = int(os.environ.get("BALLOTCHAIN_MINING_REWARD", "1"))
    MINER_ADDRESS = os.environ.get("BALLOTCHAIN_MINER_ADDRESS", "election-authority-miner")
    AUTO_SEAL = _as_bool(os.environ.get("BALLOTCHAIN_AUTO_SEAL", "true"))
    CANDIDATES = parse_candidates(os.environ.get("BALLOTCHAIN_CANDIDATES", DEFAULT_CANDIDATES))

    if DIFFICULTY < 0:
        raise ValueError("BALLOTCHAIN_DIFFICULTY must be >= 0")

    # Security Configuration
    ALLOWED_ORIGINS = os.environ.get(
        "BALLOTCHAIN_ALLOWED_ORIGINS", "http://localhost:4200,http://localhost:3000"
    ).split(",")

    # Rate Limiting
    RATE_LIMIT = int(os.environ.get("BALLOTCHAIN_RATE_LIMIT", "300"))
    RATE_WINDOW = int(os.environ.get("BALLOTCHAIN_RATE_WINDOW", "60"))


DB_PATH: str
STORAGE_MODE: str
DIFFICULTY: int
MINING_REWARD: int
MINER_ADDRESS: str
AUTO_SEAL: bool
CANDIDATES: list[tuple[str, str]]
ALLOWED_ORIGINS: list[str]
RATE_LIMIT: int
RATE_WINDOW: int

reload()

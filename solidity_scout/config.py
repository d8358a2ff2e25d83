"""Configuration constants for the Solidity build-tool scout."""

import os

ARCHIVE_BASE_URL = "https://data.gharchive.org"
API_BASE_URL = "https://api.github.com"

# GitHub rejects requests without a User-Agent
USER_AGENT = "solidity-tool-checker"

# Credentials: one token or a comma-separated list
TOKEN_ENV_VAR = "GITHUB_TOKEN"

# Local shard storage, one file per archive hour
DATA_DIR = "gharchive_data"
SHARD_SUFFIX = ".json.gz"
HOURS_PER_DAY = 24
DEFAULT_LOOKBACK_DAYS = 1

# Only this activity type carries commit data
RELEVANT_EVENT_TYPE = "PushEvent"

# Retry policy shared by the fetcher and the verifier
MAX_ATTEMPTS = 3
BACKOFF_SECONDS = 2  # sleep BACKOFF_SECONDS * attempt between retries
RATE_LIMIT_MIN_SLEEP = 60  # floor on the wait after a 403 with zero quota

# Bounded fan-out per phase
FETCH_CONCURRENCY = 8
PARSE_WORKERS = os.cpu_count() or 4
VERIFY_CONCURRENCY = 10

# HTTP client timeouts (seconds)
DOWNLOAD_TIMEOUT = 300
API_TIMEOUT = 30

# No run-level deadline unless one is given
RUN_TIMEOUT = None

PROGRESS_INTERVAL = 200  # log a progress line every N verified repos

# --- Build-tool markers ---
# A marker file matches when an added path ends with one of these names;
# remote checks try the candidates in order.
MARKER_FILES = {
    "hardhat": ("hardhat.config.js", "hardhat.config.ts"),
    "foundry": ("foundry.toml",),
}

# "either": verify when at least one marker kind is still missing locally
# "both": verify only when no marker kind was found locally
MISSING_POLICIES = ("either", "both")
DEFAULT_MISSING_POLICY = "either"

# Commit-message keywords, matched as whole whitespace-separated tokens
DEFAULT_LEXICON = (
    "solidity", "contract", "contracts", "sol", "evm", "hardhat", "foundry",
    "forge", "pragma", "yul", "erc20", "erc721", "erc1155",
    "openzeppelin", "metamask", "gas", "abi", "bytecode",
    "ethers.js", "web3.js", "truffle", "solc",
    "delegatecall", "multisig", "wallet",
)

LOG_FILE = "solidity_scout.log"

"""Logging setup for the curation passes.

Importing this module configures the root logger once. The level comes from
``LOG_LEVEL``; HTTP and driver chatter from the provider SDKs is kept at
WARNING so per-item pass logs stay readable.
"""

import logging

from .config import LOG_LEVEL

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

for _noisy in ("httpx", "openai", "pymongo", "pinecone", "urllib3"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

__all__ = ["logging"]

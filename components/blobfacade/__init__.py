
"""
Portable blob storage: one Bucket API over pluggable storage drivers.
"""

from __future__ import annotations
from typing import Optional, Tuple

from .contracts import *
from .errors import *
from .bucket import Bucket, DEFAULT_SIGNED_URL_EXPIRY
from .cancel import CancelToken
from .listing import ListIterator
from .ports import BlobDriver, BucketURLOpener, DriverReader, DriverWriter
from .reader import Reader
from .sniff import SNIFF_LEN, detect_content_type
from .urlmux import URLMux, default_url_mux, open_bucket
from .writer import Writer
from .adapters.inmemory import MemoryDriver, MemoryEntry, MemoryURLOpener

from .config import BlobSettings


def make_bucket_from_env(mux: Optional[URLMux] = None) -> Tuple[Bucket, str]:
    cfg = BlobSettings()
    mux = mux or default_url_mux()
    bucket = mux.open_bucket(cfg.BLOB_URL)
    return bucket, bucket.provider

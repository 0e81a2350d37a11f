"""
cachemount — build cache restore for CI jobs.

Maps manual cache paths and ecosystem shorthands (go, yarn, rust, ...)
onto a cross-invocation cache volume via bind mounts, or onto a
key-addressed remote cache store.
"""

__version__ = "1.0.0"
__author__ = "cachemount contributors"

CACHE_ROOT_ENV = "NSC_CACHE_PATH"
REMOTE_DIR_ENV = "CACHEMOUNT_REMOTE_DIR"
STATE_FILE_ENV = "CACHEMOUNT_STATE_FILE"

ACTION_VERSION = f"cachemount@v{__version__.split('.')[0]}"

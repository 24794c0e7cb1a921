"""
Import checkpoint management for Catalog Sync.

The checkpoint records every SKU a run has finished (imported or skipped),
so an interrupted run can pick up where it stopped without an explicit
IMPORT_OFFSET.
"""

import os
import json
import logging
import threading
from datetime import datetime


def load_checkpoint(path):
    """
    Load the set of completed SKUs from the checkpoint file.

    Returns:
        Set of SKUs (empty when the file is missing or unreadable)
    """
    try:
        if os.path.exists(path):
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
                return set(data.get("completed_skus", []))
    except json.JSONDecodeError as e:
        logging.warning(f"Failed to parse checkpoint {path}: {e}. Starting fresh.")
    except (IOError, AttributeError) as e:
        logging.warning(f"Failed to read checkpoint {path}: {e}. Starting fresh.")

    return set()


def save_checkpoint(path, completed_skus):
    """Write the completed SKUs to the checkpoint file."""
    data = {
        "completed_skus": sorted(completed_skus),
        "last_updated": datetime.now().isoformat()
    }
    tmp_path = f"{path}.tmp"
    with open(tmp_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=4)
    os.replace(tmp_path, path)


def clear_checkpoint(path):
    """Remove the checkpoint file, e.g. after the remote catalog was reset."""
    try:
        os.remove(path)
        logging.info(f"Cleared import checkpoint: {path}")
    except FileNotFoundError:
        pass


def compute_resume_offset(skus, completed_skus):
    """
    Length of the longest prefix of skus that is entirely completed.

    Workers finish out of order, so SKUs past the first gap may also be
    done; those are skipped by the remote SKU lookup instead.
    """
    offset = 0
    for sku in skus:
        if sku not in completed_skus:
            break
        offset += 1
    return offset


class CheckpointRecorder:
    """Thread-safe recorder that persists the checkpoint after every item."""

    def __init__(self, path, completed_skus=None):
        self.path = path
        self.completed_skus = set(completed_skus or ())
        self._lock = threading.Lock()

    def record(self, sku):
        with self._lock:
            self.completed_skus.add(sku)
            try:
                save_checkpoint(self.path, self.completed_skus)
            except OSError as e:
                logging.error(f"Failed to write checkpoint {self.path}: {e}")

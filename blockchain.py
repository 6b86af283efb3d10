# blockchain.py
# Append-only chain of registry blocks. Each accepted state-changing request
# becomes one block carrying the signed tx, the events it emitted and the
# registry state root after it was applied.

import os
import json

from tools import get_hash, canonical_json_bytes, short_hex

ZERO_HASH = "0x" + "0" * 64


class Block:
    """
    One committed registry transaction.

    height / previous_block_hash / block_hash are assigned by
    Blockchain.append_block; the rest is fixed when the registry builds it.
    The header binds the body (txs + events) through body_hash, so editing
    a committed event changes the recomputed block_hash.
    """

    def __init__(self, state_root, timestamp, lst_of_txs, lst_of_events):
        self.height = None
        self.previous_block_hash = None
        self.block_hash = None

        self.state_root = state_root
        self.timestamp = timestamp
        self.lst_of_txs = lst_of_txs
        self.lst_of_events = lst_of_events

    def body_hash(self):
        return get_hash(canonical_json_bytes({"txs": self.lst_of_txs, "events": self.lst_of_events}))

    def header(self):
        return {
            "height": self.height,
            "previous_block_hash": self.previous_block_hash,
            "state_root": self.state_root,
            "timestamp": self.timestamp,
            "body_hash": self.body_hash(),
        }

    def compute_hash(self):
        return get_hash(canonical_json_bytes(self.header()))

    def events_named(self, event_name):
        return [ev for ev in self.lst_of_events if ev["event"] == event_name]

    def to_dict(self):
        d = self.header()
        d["block_hash"] = self.block_hash
        d["lst_of_txs"] = self.lst_of_txs
        d["lst_of_events"] = self.lst_of_events
        return d


class Blockchain:
    def __init__(self):
        self.lst_of_blocks = []
        self.dict_block_by_hash = {}
        print("[BLOCKCHAIN] New empty blockchain created.")

    def next_height(self):
        """Height the next appended block will get."""
        return len(self.lst_of_blocks)

    def get_newest_block(self):
        return self.lst_of_blocks[-1] if self.lst_of_blocks else None

    def append_block(self, block):
        newest = self.get_newest_block()
        block.height = self.next_height()
        block.previous_block_hash = newest.block_hash if newest is not None else ZERO_HASH
        block.block_hash = block.compute_hash()

        self.lst_of_blocks.append(block)
        self.dict_block_by_hash[block.block_hash] = block
        print("[BLOCKCHAIN] block", block.height, "appended, hash =", short_hex(block.block_hash),
              ", events =", [ev["event"] for ev in block.lst_of_events])
        return block

    def get_block_by_height(self, height):
        if 0 <= height < len(self.lst_of_blocks):
            return self.lst_of_blocks[height]
        return None

    def get_block_by_hash(self, block_hash_hex):
        return self.dict_block_by_hash.get(block_hash_hex)

    def get_events(self, event_name=None):
        """
        All emitted events in chain order, optionally only those named
        `event_name` (ProfileCreated / DiscountComputed / DecryptionVerified).
        """
        events = []
        for blk in self.lst_of_blocks:
            events.extend(blk.lst_of_events if event_name is None else blk.events_named(event_name))
        return events

    def _first_fault(self):
        """
        Return (height, reason) of the first inconsistent block, or None.
        """
        expected_prev = ZERO_HASH
        for i, blk in enumerate(self.lst_of_blocks):
            if blk.height != i:
                return i, "height is %s" % blk.height
            if blk.previous_block_hash != expected_prev:
                return i, "previous_block_hash does not link to block %d" % (i - 1)
            if blk.block_hash != blk.compute_hash():
                return i, "block_hash does not match header / body"
            expected_prev = blk.block_hash
        return None

    def verify_chain(self):
        fault = self._first_fault()
        if fault is not None:
            print("[BLOCKCHAIN][ERROR] chain broken at block", fault[0], ":", fault[1])
            return False
        print("[BLOCKCHAIN] chain of", len(self.lst_of_blocks), "blocks verified.")
        return True

    def __str__(self):
        lines = ["=== Registry chain ==="]
        for blk in self.lst_of_blocks:
            tx_types = ",".join(tx["tx_type"] for tx in blk.lst_of_txs)
            lines.append("  #%d %s %s" % (blk.height, short_hex(blk.block_hash), tx_types))
        lines.append("blocks: %d, verify_chain: %s" % (
            len(self.lst_of_blocks), "OK" if self.verify_chain() else "FAIL"))
        return "\n".join(lines)

    def dump_to_file(self, filepath=None, reverse=False):
        """
        Write every block as indented JSON under a '=== Block <height> ==='
        title. Defaults to current_blockchain.txt next to this module;
        reverse=True writes newest first. Returns the path written.
        """
        if filepath is None:
            filepath = os.path.join(os.path.dirname(__file__), "current_blockchain.txt")

        blocks = list(reversed(self.lst_of_blocks)) if reverse else self.lst_of_blocks
        summary = {
            "num_blocks": len(self.lst_of_blocks),
            "num_events": len(self.get_events()),
            "order": "newest->oldest" if reverse else "oldest->newest",
        }

        with open(filepath, "w", encoding="utf-8") as f:
            f.write("# Blockchain dump\n")
            f.write("# Summary: " + json.dumps(summary) + "\n\n")
            for blk in blocks:
                f.write("=== Block %d ===\n" % blk.height)
                f.write(json.dumps(blk.to_dict(), indent=2, sort_keys=True))
                f.write("\n\n")

        print("[BLOCKCHAIN] Blockchain written to file:", filepath)
        return filepath

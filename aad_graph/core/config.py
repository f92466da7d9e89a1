# aad_graph/core/config.py
"""
Tape configuration.

log_level thresholds:
    0 : silent
    1 : one summary line per backward pass (nodes, edges, contractions, merges)
        and the live-node report of Tape.report_leaks()
    3 : node and edge creation traces
    4 : edge merge / contraction / reference count traces
"""

import os
from dataclasses import dataclass


@dataclass
class TapeConfig:
    """Run-time switches of one Tape"""
    log_level: int = 0
    contract_edges: bool = True

    @staticmethod
    def from_env(prefix: str = "AAD_GRAPH_") -> "TapeConfig":
        """
        Build a config from environment variables

        Args:
            prefix: Variable name prefix

        Reads:
            {prefix}LOG_LEVEL       integer, default 0
            {prefix}CONTRACT_EDGES  "0"/"false"/"no" disables contraction

        Example:
            AAD_GRAPH_LOG_LEVEL=3 python train.py
        """
        level = int(os.environ.get(prefix + "LOG_LEVEL", "0"))
        contract = os.environ.get(prefix + "CONTRACT_EDGES", "1").strip().lower()
        return TapeConfig(
            log_level=level,
            contract_edges=contract not in ("0", "false", "no", "off"),
        )

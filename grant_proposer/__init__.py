"""
Grant Proposer
==============
Batch grant proposals for SPL Governance.

Turns a list of instructions into one governance proposal with one
proposal transaction per instruction, retries what failed, and executes
the proposal once it has passed.
"""

__version__ = "0.3.1"

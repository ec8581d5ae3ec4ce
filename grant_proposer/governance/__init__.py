"""
SPL Governance Program
======================
PDA derivation, account decoding and instruction encoding for the
subset of the governance program that proposals need.
"""

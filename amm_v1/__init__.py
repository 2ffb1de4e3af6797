"""
amm_v1: a constant-product exchange between a chain's base asset and one
token, executed on a small persistent chain with Merkle Patricia state.
"""

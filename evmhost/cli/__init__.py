"""
evmhost Command Line Interface
"""

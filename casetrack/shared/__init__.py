"""
Shared Kernel
==============

Code shared across bounded contexts: infrastructure helpers and API glue.
"""

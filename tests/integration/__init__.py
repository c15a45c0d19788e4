# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Integration tests for title linker components.

This package contains integration tests that run the service, ledger and
rewrite engine together against a vault on disk.
"""

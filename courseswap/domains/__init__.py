# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain services layer for CourseSwap.

This package contains domain services that encapsulate business logic.
Each domain module provides services that orchestrate operations
across the registry and the external collaborators.

Domains:
    swap: Swap requests, mutual matching, confirmation and completion.
"""

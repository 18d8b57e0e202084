# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Core package.

This package contains shared configuration and error types:
- config: Application configuration and settings
- errors: Error codes and the base service exception
"""

# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Test Suite for the Hookflow Backend

Structure:
- workflow/: Unit tests for the workflow engine
- unit/: Unit tests for services, stores and configuration
- api/: Route tests against the full application
"""

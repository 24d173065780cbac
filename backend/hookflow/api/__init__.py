# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
API Route Modules

FastAPI routers organized by domain:
- workflows: Workflow definitions and starting runs
- executions: Run status, logs, history and cancellation
- webhooks: Inbound webhook triggers
"""

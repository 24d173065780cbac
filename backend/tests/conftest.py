# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Shared fixtures for the Hookflow test suite
"""

import os
import sys
from typing import Callable, List

import httpx
import pytest

# Add backend to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from hookflow.execution_store import InMemoryExecutionStore


@pytest.fixture
def store():
    """Fresh in-memory execution store"""
    return InMemoryExecutionStore()


@pytest.fixture
def recorded_requests() -> List[httpx.Request]:
    """Requests seen by the mock transport, in order"""
    return []


@pytest.fixture
def make_http_client(recorded_requests) -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Build an AsyncClient whose requests go to ``handler`` instead of the network"""

    def factory(handler):
        def transport_handler(request: httpx.Request) -> httpx.Response:
            recorded_requests.append(request)
            return handler(request)

        return httpx.AsyncClient(transport=httpx.MockTransport(transport_handler))

    return factory



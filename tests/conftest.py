"""测试公共工具"""

from datetime import datetime, timedelta, timezone
from typing import List, Union

import pytest

from uptime_monitor.checkers.base import BaseProbeTransport, ProbeRequest, ProbeResponse
from uptime_monitor.utils.exceptions import ProbeError


class FakeClock:
    """可手动推进的时钟"""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2024, 1, 15, 12, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class FakeTransport(BaseProbeTransport):
    """按顺序返回预设响应的探测传输，预设项为异常时抛出"""

    def __init__(self, responses: List[Union[ProbeResponse, Exception]] = None):
        super().__init__()
        self.responses = list(responses or [])
        self.requests: List[ProbeRequest] = []

    async def probe(self, request: ProbeRequest) -> ProbeResponse:
        self.requests.append(request)
        if len(self.responses) > 1:
            result = self.responses.pop(0)
        else:
            result = self.responses[0]
        if isinstance(result, Exception):
            raise result
        return result


def ok_response(status_code: int = 200, elapsed_ms: int = 42, body: str = 'ok',
                ssl_info=None) -> ProbeResponse:
    return ProbeResponse(status_code=status_code, elapsed_ms=elapsed_ms, body=body,
                         ssl_info=ssl_info)


def connection_error(message: str = 'Connection refused') -> ProbeError:
    return ProbeError(message, elapsed_ms=5)


@pytest.fixture
def clock():
    return FakeClock()

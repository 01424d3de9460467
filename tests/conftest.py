import os

# 必须在导入 src 之前设置：测试不写日志文件，也不读取本机的服务端凭证
os.environ.setdefault("LOG_DISABLE_FILE", "true")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ["API_KEY"] = ""

import httpx  # noqa: E402
import pytest  # noqa: E402


class FakeClock:
    """可手动推进的单调时钟"""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingUpstream:
    """
    按 Bearer 凭证返回预设响应的假上游

    responses: {secret: httpx.Response 或 callable(request) -> httpx.Response}
    未登记的凭证返回 200 {"ok": true}。
    """

    def __init__(self, responses: dict | None = None) -> None:
        self.responses = responses or {}
        self.requests: list[httpx.Request] = []

    @property
    def used_secrets(self) -> list[str]:
        return [r.headers["authorization"].removeprefix("Bearer ") for r in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        secret = request.headers.get("authorization", "").removeprefix("Bearer ")
        response = self.responses.get(secret)
        if response is None:
            return httpx.Response(200, json={"ok": True, "secret": secret[:4]})
        if callable(response):
            return response(request)
        return response

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def upstream() -> RecordingUpstream:
    return RecordingUpstream()
